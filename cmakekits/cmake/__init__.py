"""
Generator integration: cache file parsing, value rendering and generator
selection.
"""

from .cache import CacheEntry, CMakeCache, is_truthy
from .values import CMakeValue, cmakeify, define_flag
from .generators import (
    compiler_id,
    is_generator_available,
    is_multi_config_generator,
    linker_id,
    pick_generator,
)

__all__ = [
    "CacheEntry",
    "CMakeCache",
    "is_truthy",
    "CMakeValue",
    "cmakeify",
    "define_flag",
    "compiler_id",
    "is_generator_available",
    "is_multi_config_generator",
    "linker_id",
    "pick_generator",
]
