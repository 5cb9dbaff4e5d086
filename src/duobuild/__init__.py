"""Public package entrypoint for the Milk-V Duo build orchestrator."""

from .cache import ArtifactCache
from .config import BuildConfig, load_config
from .context import BuildContext
from .errors import (
    CacheError,
    DispatchError,
    DuoBuildError,
    EnvironmentStateError,
    PatchError,
    ProcessError,
    ValidationError,
)
from .fetch import Fetcher
from .layout import Layout
from .patches import PatchPlan, PatchStep
from .targets import BuildTargets, Dispatcher
from .toolchain import ToolchainBuilder, ToolchainSnapshot, VariantState

__all__ = [
    "ArtifactCache",
    "BuildConfig",
    "BuildContext",
    "BuildTargets",
    "CacheError",
    "DispatchError",
    "Dispatcher",
    "DuoBuildError",
    "EnvironmentStateError",
    "Fetcher",
    "Layout",
    "PatchError",
    "PatchPlan",
    "PatchStep",
    "ProcessError",
    "ToolchainBuilder",
    "ToolchainSnapshot",
    "ValidationError",
    "VariantState",
    "load_config",
]
