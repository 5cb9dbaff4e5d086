"""Per-variant build states and the filesystem snapshot they start from."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from duobuild.errors import ValidationError
from duobuild.toolchain.variants import VARIANTS, ToolchainVariant, VariantName


class VariantState(StrEnum):
    UNBUILT = "unbuilt"
    CLEANING = "cleaning"
    CONFIGURING = "configuring"
    BUILDING = "building"
    BUILT = "built"


TRANSITIONS: dict[VariantState, VariantState] = {
    VariantState.UNBUILT: VariantState.CLEANING,
    VariantState.CLEANING: VariantState.CONFIGURING,
    VariantState.CONFIGURING: VariantState.BUILDING,
    VariantState.BUILDING: VariantState.BUILT,
}


def is_marker_present(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


@dataclass(frozen=True, slots=True)
class ToolchainSnapshot:
    """Marker presence, read once at the start of a run and never refreshed."""

    host_arch: str
    built: frozenset[VariantName]
    variants: tuple[ToolchainVariant, ...] = VARIANTS

    @classmethod
    def probe(
        cls,
        host_tools: Path,
        host_arch: str,
        variants: tuple[ToolchainVariant, ...] = VARIANTS,
    ) -> ToolchainSnapshot:
        built = frozenset(
            variant.name
            for variant in variants
            if is_marker_present(variant.marker(host_tools, host_arch))
        )
        return cls(host_arch=host_arch, built=built, variants=variants)

    def is_built(self, variant: ToolchainVariant) -> bool:
        return variant.name in self.built

    @property
    def missing(self) -> tuple[ToolchainVariant, ...]:
        return tuple(variant for variant in self.variants if not self.is_built(variant))

    @property
    def complete(self) -> bool:
        return not self.missing


@dataclass(slots=True)
class VariantProgress:
    variant: ToolchainVariant
    state: VariantState = VariantState.UNBUILT
    history: list[VariantState] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.state)

    def advance(self, target: VariantState) -> None:
        expected = TRANSITIONS.get(self.state)
        if expected is not target:
            raise ValidationError(
                f"Illegal toolchain state transition {self.state} -> {target}.",
                context={"variant": str(self.variant.name)},
            )
        self.state = target
        self.history.append(target)

    @property
    def skipped(self) -> bool:
        return self.history == [VariantState.BUILT]
