from __future__ import annotations

import logging
from typing import Protocol

from .models import Source

log = logging.getLogger(__name__)


class CursorStore(Protocol):
    def update_cursor(self, source_id: int, external_id: str) -> None: ...


class CursorTracker:
    """
    Re-anchors a source's early-stop boundary after a run.

    Call `commit` only after the run's postings were durably inserted, so the
    boundary never moves past postings that were not saved.
    """

    def __init__(self, store: CursorStore) -> None:
        self._store = store

    def commit(self, source: Source, new_cursor: str | None) -> bool:
        """Persist `new_cursor` (overwrite) and update `source`; no-op when None."""
        if not new_cursor:
            log.info("No new cursor for %r; keeping %r.", source.name, source.cursor_id)
            return False
        self._store.update_cursor(source.id, new_cursor)
        if source.cursor_id != new_cursor:
            log.info("Cursor for %r: %r -> %r", source.name, source.cursor_id, new_cursor)
        source.cursor_id = new_cursor
        return True
