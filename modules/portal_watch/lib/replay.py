"""
Offline BrowserSession over saved HTML snapshots.

Each URL maps to an ordered list of page snapshots. `navigate(url)` loads the
first one; any click moves to the next snapshot of the same URL (the way a
"next page" control would), and elements from the previous snapshot become
stale. Waits evaluate their predicate once since snapshots never change on
their own.

Used for dry runs against captured pages and for tests.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .config import Settings
from .errors import SessionError

log = logging.getLogger(__name__)


class ReplayElement:
    def __init__(self, tag: Tag, session: ReplaySession, generation: int) -> None:
        self._tag = tag
        self._session = session
        self._generation = generation

    def _check(self) -> None:
        if self.is_stale():
            raise SessionError("stale element (page changed)")

    def text(self) -> str:
        self._check()
        return self._tag.get_text("\n", strip=True)

    def attribute(self, name: str) -> str | None:
        self._check()
        value = self._tag.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            value = " ".join(value)
        if name in {"href", "src"} and value:
            return urljoin(self._session.current_url or "", value)
        return str(value)

    def click(self) -> None:
        self._check()
        self._session.clicks.append(self._tag.get("href") or self._tag.name)
        self._session.advance()

    def query(self, selector: str) -> list[ReplayElement]:
        self._check()
        return [ReplayElement(t, self._session, self._generation) for t in self._tag.select(selector)]

    def is_stale(self) -> bool:
        return self._generation != self._session.generation


class ReplaySession:
    """BrowserSession implementation that serves pre-recorded HTML."""

    def __init__(self, pages: Mapping[str, Sequence[str]]) -> None:
        self._pages = {url: list(snaps) for url, snaps in pages.items()}
        self.current_url: str | None = None
        self.generation = 0
        self.visited: list[str] = []
        self.clicks: list[str] = []
        self.scripts: list[str] = []
        self._index = 0
        self._soup: BeautifulSoup | None = None

    # ---- BrowserSession ----
    def navigate(self, url: str) -> None:
        if url not in self._pages:
            raise SessionError(f"no recorded snapshots for {url}")
        self.current_url = url
        self.visited.append(url)
        self._index = 0
        self._load()

    def query(self, selector: str) -> list[ReplayElement]:
        if self._soup is None:
            return []
        return [ReplayElement(t, self, self.generation) for t in self._soup.select(selector)]

    def wait_until(self, predicate: Callable[[], bool], timeout: float) -> bool:
        try:
            return bool(predicate())
        except SessionError:
            return False

    def run_script(self, js: str, *args: Any) -> Any:
        self.scripts.append(js)
        if "click()" in js and args and isinstance(args[0], ReplayElement):
            args[0].click()
        return None

    # ---- snapshot control ----
    def advance(self) -> bool:
        """Move to the next snapshot of the current URL; False if there is none."""
        snaps = self._pages.get(self.current_url or "", [])
        if self._index + 1 >= len(snaps):
            log.debug("Replay: no snapshot after #%d for %s", self._index, self.current_url)
            return False
        self._index += 1
        self._load()
        return True

    def _load(self) -> None:
        snaps = self._pages[self.current_url or ""]
        self._soup = BeautifulSoup(snaps[self._index], "html.parser") if snaps else None
        self.generation += 1

    # ---- constructors ----
    @classmethod
    def from_directory(cls, path: str) -> ReplaySession:
        """
        Load snapshots described by `<path>/manifest.json`:
            {"https://portal.example/jobs": ["page1.html", "page2.html"], ...}
        """
        manifest = os.path.join(path, "manifest.json")
        with open(manifest, encoding="utf-8") as f:
            entries = json.load(f)
        if not isinstance(entries, dict):
            raise ValueError(f"{manifest} must map URLs to lists of snapshot files")

        pages: dict[str, list[str]] = {}
        for url, files in entries.items():
            snaps: list[str] = []
            for name in files or []:
                with open(os.path.join(path, name), encoding="utf-8") as f:
                    snaps.append(f.read())
            pages[str(url)] = snaps
        return cls(pages)


@contextmanager
def open_replay_session(settings: Settings) -> Iterator[ReplaySession]:
    """Session factory for dry runs: serve `settings.replay_dir` instead of a live browser."""
    if not settings.replay_dir:
        raise SessionError("replay_dir is not configured")
    log.info("Replaying recorded pages from %s", settings.replay_dir)
    yield ReplaySession.from_directory(settings.replay_dir)
