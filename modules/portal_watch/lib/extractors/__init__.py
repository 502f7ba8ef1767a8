# portal_watch/extractors/__init__.py
from __future__ import annotations

from ..models import Variant
from .base import JobExtractor
from .free_text import FreeTextExtractor
from .registry import get
from .structured import StructuredExtractor


def for_variant(variant: Variant) -> JobExtractor:
    """Instantiate the registered extractor for a variant."""
    return get(variant)()


__all__ = [
    "FreeTextExtractor",
    "JobExtractor",
    "StructuredExtractor",
    "for_variant",
]
