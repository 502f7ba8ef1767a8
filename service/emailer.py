# service/emailer.py
from __future__ import annotations

import os
import smtplib
import ssl
import time
import uuid
from collections.abc import Iterable
from datetime import datetime
from email.message import EmailMessage
from email.utils import formatdate, make_msgid

# ---- Errors -----------------------------------------------------------------


class EmailSendError(RuntimeError):
    """Raised when an email cannot be delivered."""


# ---- Env / Settings ----------------------------------------------------------


def _getenv(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


def _resolve_smtp_settings() -> dict:
    """
    SMTP settings from env:
      - SMTP_HOST / SMTP_PORT (default 127.0.0.1:587)
      - SMTP_USERNAME / SMTP_PASSWORD
      - SMTP_USE_SSL = "true" | "false"
      - SMTP_STARTTLS = "true" | "false" | "auto" (default)
      - SMTP_FROM / SMTP_FROM_NAME
      - SMTP_INSECURE_TLS = "true" to skip certificate checks (local relays)
    """
    host = _getenv("SMTP_HOST", "127.0.0.1")
    port = int(_getenv("SMTP_PORT", "587") or 587)
    username = _getenv("SMTP_USERNAME")
    password = _getenv("SMTP_PASSWORD")

    use_ssl = (_getenv("SMTP_USE_SSL", "false") or "false").strip().lower() == "true"
    starttls = (_getenv("SMTP_STARTTLS", "auto") or "auto").strip().lower()
    if use_ssl:
        starttls = "false"

    return {
        "host": host,
        "port": port,
        "username": username,
        "password": password,
        "use_ssl": use_ssl,
        "starttls": starttls,
        "from_addr": (_getenv("SMTP_FROM", username or "") or "").strip(),
        "from_name": (_getenv("SMTP_FROM_NAME", "Portal Watch") or "").strip(),
        "insecure_tls": (_getenv("SMTP_INSECURE_TLS", "false") or "false").strip().lower() == "true",
    }


# ---- Helpers ----------------------------------------------------------------


def _as_list(values: Iterable[str] | str | None) -> list[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(",")
    return [v for v in (s.strip() for s in values) if v]


def _should_starttls(port: int, starttls_setting: str) -> bool:
    if starttls_setting == "true":
        return True
    if starttls_setting == "false":
        return False
    # "auto": STARTTLS except on plain relay ports
    return port not in (25, 1025, 2525)


def build_message(*, subject: str, html: str, to: list[str], from_addr: str, from_name: str | None) -> EmailMessage:
    if not subject or not subject.strip():
        raise EmailSendError("Missing subject.")
    if not html or not html.strip():
        raise EmailSendError("Missing HTML body.")
    if not to:
        raise EmailSendError("No recipients.")
    if not from_addr:
        raise EmailSendError("No from address resolved. Set SMTP_FROM or SMTP_USERNAME.")

    msg = EmailMessage()
    msg["From"] = f"{from_name} <{from_addr}>" if from_name else from_addr
    msg["To"] = ", ".join(to)
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()

    stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    nonce = uuid.uuid4().hex[:8]
    msg.set_content("This message requires an HTML-capable client.")
    msg.add_alternative(html.rstrip() + f"\n<!-- mailer-ts:{stamp} nonce:{nonce} -->", subtype="html", charset="utf-8")
    return msg


def _send_via_smtp(msg: EmailMessage, *, rcpt_to: list[str], settings: dict) -> None:
    host = settings["host"]
    port = settings["port"]
    use_ssl = settings["use_ssl"]

    context = ssl._create_unverified_context() if settings["insecure_tls"] else ssl.create_default_context()

    try:
        server = smtplib.SMTP_SSL(host, port, context=context) if use_ssl else smtplib.SMTP(host, port)
        with server:
            server.ehlo()
            if not use_ssl and _should_starttls(port, settings["starttls"]):
                server.starttls(context=context)
                server.ehlo()
            if settings["username"] and settings["password"]:
                server.login(settings["username"], settings["password"])
            server.send_message(msg, to_addrs=rcpt_to)
    except smtplib.SMTPResponseException as e:
        raise EmailSendError(f"SMTP send failed ({e.smtp_code}): {e.smtp_error!r}") from e
    except Exception as e:
        raise EmailSendError(f"SMTP send failed: {e}") from e


def _is_transient(e: EmailSendError) -> bool:
    cause = e.__cause__
    if isinstance(cause, smtplib.SMTPResponseException):
        return 400 <= cause.smtp_code < 500
    return isinstance(cause, (smtplib.SMTPServerDisconnected, ConnectionError, TimeoutError))


# ---- Public API --------------------------------------------------------------


def send_html(*, subject: str, html: str, to: Iterable[str] | str, retries: int = 3) -> str:
    """
    Send an HTML email.

    Returns:
        message_id (str): RFC-822 Message-ID generated by the sender.

    Raises:
        EmailSendError on any failure (connection/auth/SMTP/validation/etc).
    """
    settings = _resolve_smtp_settings()
    to_l = _as_list(to)
    msg = build_message(
        subject=subject,
        html=html,
        to=to_l,
        from_addr=settings["from_addr"],
        from_name=settings["from_name"],
    )

    for attempt in range(retries + 1):
        try:
            _send_via_smtp(msg, rcpt_to=to_l, settings=settings)
            return str(msg["Message-ID"])
        except EmailSendError as e:  # noqa: PERF203
            if attempt >= retries or not _is_transient(e):
                raise
            time.sleep(2**attempt)  # 1s, 2s, 4s
    raise EmailSendError("Permanent send failure after retries")
