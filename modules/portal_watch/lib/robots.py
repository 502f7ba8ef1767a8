"""
robots.txt policy gate.

Fails open: if robots.txt cannot be fetched or parsed, the source is allowed
and a warning is logged.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

from .http_client import HttpClient

log = logging.getLogger(__name__)


class RobotsPolicy:
    """
    Answers `is_allowed(url)` from the site's robots.txt.

    robots.txt is fetched once per scheme+host and cached for the lifetime of
    the instance (one cycle).
    """

    def __init__(self, client: HttpClient | None = None, *, user_agent: str = "*") -> None:
        self._client = client or HttpClient()
        self._user_agent = user_agent
        self._cache: dict[str, RobotFileParser | None] = {}

    def is_allowed(self, url: str) -> bool:
        try:
            parsed = urlparse(url)
            if not parsed.scheme or not parsed.netloc:
                log.warning("Cannot derive robots.txt location for %r; allowing.", url)
                return True
            parser = self._parser_for(f"{parsed.scheme}://{parsed.netloc}")
            if parser is None:
                return True
            allowed = parser.can_fetch(self._user_agent, url)
        except Exception as e:
            log.warning("robots.txt check failed for %s: %r. Proceeding.", url, e)
            return True

        if allowed:
            log.info("Path %r is allowed by robots.txt", parsed.path or "/")
        else:
            log.warning("Path %r is disallowed by robots.txt", parsed.path or "/")
        return allowed

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------ #
    def _parser_for(self, origin: str) -> RobotFileParser | None:
        if origin in self._cache:
            return self._cache[origin]

        robots_url = f"{origin}/robots.txt"
        log.info("Checking robots.txt at %s", robots_url)
        parser: RobotFileParser | None
        try:
            status, text = self._client.fetch(robots_url)
        except Exception as e:
            log.warning("Could not read %s: %r. Proceeding with caution.", robots_url, e)
            parser = None
        else:
            if status != 200:
                log.warning("robots.txt returned HTTP %s, assuming all allowed", status)
                parser = None
            else:
                parser = RobotFileParser(robots_url)
                parser.parse(text.splitlines())

        self._cache[origin] = parser
        return parser


class AllowAllPolicy:
    """Gate that allows everything; used for replays of recorded pages."""

    def is_allowed(self, url: str) -> bool:
        return True
