"""Built-in pattern bundles, keyed by locale."""

from typing import Callable

from dialogstate.core.patterns import PatternBundle
from dialogstate.core.tables import en, ko

BUILTIN_BUNDLES: dict[str, Callable[[], PatternBundle]] = {
    "en": en.bundle,
    "ko": ko.bundle,
}

__all__ = ["BUILTIN_BUNDLES"]
