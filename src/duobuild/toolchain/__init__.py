"""Cross-toolchain variant state machine."""

from .builder import ToolchainBuilder, ToolchainReport, clean_tree, fix_newlib_pthread
from .state import ToolchainSnapshot, VariantProgress, VariantState
from .variants import VARIANTS, ToolchainVariant, VariantName

__all__ = [
    "VARIANTS",
    "ToolchainBuilder",
    "ToolchainReport",
    "ToolchainSnapshot",
    "ToolchainVariant",
    "VariantName",
    "VariantProgress",
    "VariantState",
    "clean_tree",
    "fix_newlib_pthread",
]
