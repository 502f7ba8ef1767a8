# portal_watch/http_client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)


class HttpClient:
    """Shared HTTP client for the small plain-HTTP side of a cycle (robots.txt)."""

    def __init__(
        self,
        timeout: float = 5.0,
        user_agent: str = "PortalWatch/1.0 (+https://example.invalid)",
    ):
        self.timeout = float(timeout)
        self.user_agent = user_agent
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=2,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=8)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> tuple[int, str]:
        """GET and return (status_code, text) without raising on HTTP errors."""
        resp = self.session.get(url, headers=headers, timeout=timeout or self.timeout, **kwargs)
        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.status_code, resp.text

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)
