"""
Per-project drivers.
"""

from .base import CMakeDriver, Target
from .legacy import CommandLineDriver
from .variant import BUILTIN_VARIANTS, Variant, VariantConfiguration, load_variants

__all__ = [
    "CMakeDriver",
    "Target",
    "CommandLineDriver",
    "BUILTIN_VARIANTS",
    "Variant",
    "VariantConfiguration",
    "load_variants",
]
