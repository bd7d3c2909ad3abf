"""
Kits: toolchain descriptors, their files, discovery and the layered registry.
"""

from .model import (
    UNSPECIFIED_KIT_NAME,
    CompilerKit,
    Kit,
    SuiteKit,
    ToolchainFileKit,
    UnspecifiedKit,
    describe_kit,
    is_unspecified,
    kit_label,
    kit_type,
)
from .files import load, persist
from .scanner import ScanHints, scan
from .registry import KitRegistry, merge_kits

__all__ = [
    "UNSPECIFIED_KIT_NAME",
    "CompilerKit",
    "Kit",
    "SuiteKit",
    "ToolchainFileKit",
    "UnspecifiedKit",
    "describe_kit",
    "is_unspecified",
    "kit_label",
    "kit_type",
    "load",
    "persist",
    "ScanHints",
    "scan",
    "KitRegistry",
    "merge_kits",
]
