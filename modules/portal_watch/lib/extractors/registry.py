from __future__ import annotations

from ..models import Variant
from .base import JobExtractor

# Global in-process registry: variant -> extractor class
_REGISTRY: dict[Variant, type[JobExtractor]] = {}


def register(cls: type[JobExtractor]) -> type[JobExtractor]:
    """
    Class decorator to register an extractor class.
    Requires cls.variant to be a Variant.
    """
    variant = getattr(cls, "variant", None)
    if not isinstance(variant, Variant):
        raise ValueError(f"Cannot register extractor {cls!r}: missing 'variant'.")
    if variant in _REGISTRY and _REGISTRY[variant] is not cls:
        # Allow idempotent re-registers of the same class; otherwise reject.
        raise ValueError(f"Variant {variant.value!r} already registered to {_REGISTRY[variant]!r}.")
    _REGISTRY[variant] = cls
    return cls


def get(variant: Variant) -> type[JobExtractor]:
    """
    Look up an extractor class by variant.
    Raises KeyError if not found.
    """
    if variant not in _REGISTRY:
        raise KeyError(f"No extractor registered for variant {variant!r}.")
    return _REGISTRY[variant]


def all_variants() -> dict[Variant, type[JobExtractor]]:
    """Shallow copy of the registry (debugging/tests)."""
    return dict(_REGISTRY)
