"""
Source → variant classification.

A known-portal token found in the source's name or URL wins over the source's
explicit `structured` flag. When both point at different variants the token
still wins and the disagreement is logged.
"""

from __future__ import annotations

import logging

from . import logging_bridge
from .models import Source, Variant

log = logging.getLogger(__name__)

# Case-insensitive substring → variant
KNOWN_TOKENS: dict[str, Variant] = {
    "akkodis": Variant.FREE_TEXT,
}


def _heuristic(source: Source) -> Variant | None:
    haystacks = ((source.name or "").lower(), (source.url or "").lower())
    for token, variant in KNOWN_TOKENS.items():
        if any(token in h for h in haystacks):
            return variant
    return None


def classify(source: Source) -> Variant | None:
    """
    Pick the extraction variant for a source.

    Returns None when no variant applies (the caller skips the source).
    """
    flagged = Variant.STRUCTURED if source.structured else None
    matched = _heuristic(source)

    if matched is not None:
        if flagged is not None and flagged is not matched:
            log.warning(
                "Source %r is flagged %s but matches %s; using %s.",
                source.name,
                flagged.value,
                matched.value,
                matched.value,
            )
            logging_bridge.activity({
                "component": "portal_watch.router",
                "op": "variant_disagreement",
                "source": source.name,
                "flagged": flagged.value,
                "matched": matched.value,
            })
        return matched

    if flagged is not None:
        return flagged

    log.warning("No compatible scraper for source %r (%s).", source.name, source.url)
    return None
