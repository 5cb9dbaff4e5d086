"""Idempotent build of the three toolchain variants from one shared checkout."""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from duobuild.config import BuildConfig
from duobuild.errors import EnvironmentStateError
from duobuild.layout import Layout
from duobuild.models import CommandSpec, GitSource
from duobuild.process import CommandRunner
from duobuild.toolchain.state import (
    ToolchainSnapshot,
    VariantProgress,
    VariantState,
    is_marker_present,
)
from duobuild.toolchain.variants import VARIANTS, ToolchainVariant

LOG = logging.getLogger("duobuild.toolchain")

NEWLIB_PTHREAD = Path("riscv-newlib/newlib/libc/machine/riscv/pthread.c")
NEWLIB_CONFIG_INCLUDE = re.compile(
    r'^#include "\.\./\.\./libgloss/libnosys/config\.h"$', re.MULTILINE
)
NEWLIB_CONFIG_REPLACEMENT = "//removed libgloss libnosys config dependency"


class SourceFetcher(Protocol):
    def clone_pinned(self, source: GitSource) -> Path:
        """Return the checkout of *source* under the output root."""


@dataclass(frozen=True, slots=True)
class ToolchainReport:
    snapshot: ToolchainSnapshot
    progress: tuple[VariantProgress, ...]

    @property
    def built(self) -> tuple[ToolchainVariant, ...]:
        return tuple(p.variant for p in self.progress if not p.skipped)

    @property
    def skipped(self) -> tuple[ToolchainVariant, ...]:
        return tuple(p.variant for p in self.progress if p.skipped)


@dataclass(slots=True)
class ToolchainBuilder:
    layout: Layout
    config: BuildConfig
    fetcher: SourceFetcher
    runner: CommandRunner
    variants: tuple[ToolchainVariant, ...] = field(default=VARIANTS)

    def probe(self) -> ToolchainSnapshot:
        return ToolchainSnapshot.probe(
            self.layout.host_tools, self.config.host_arch, variants=self.variants
        )

    def plan(self, snapshot: ToolchainSnapshot) -> tuple[VariantProgress, ...]:
        return tuple(
            VariantProgress(
                variant=variant,
                state=VariantState.BUILT if snapshot.is_built(variant) else VariantState.UNBUILT,
            )
            for variant in self.variants
        )

    def run(self, snapshot: ToolchainSnapshot | None = None) -> ToolchainReport:
        snapshot = snapshot if snapshot is not None else self.probe()
        progress = self.plan(snapshot)
        report = ToolchainReport(snapshot=snapshot, progress=progress)
        pending = [p for p in progress if p.state is VariantState.UNBUILT]
        if not pending:
            LOG.info("All toolchain variants are present; nothing to build")
            return report

        LOG.info(
            "Missing toolchain variants: %s. Fetching shared sources",
            ", ".join(p.variant.name for p in pending),
        )
        toolchain_source, musl_source = self.prepare_sources()
        for item in pending:
            self._build_variant(item, toolchain_source=toolchain_source, musl_source=musl_source)

        # All variants are built; a later cold run restores the checkout from the cache.
        if toolchain_source.exists():
            LOG.info("Removing shared toolchain source %s", toolchain_source)
            shutil.rmtree(toolchain_source)
        return report

    def prepare_sources(self) -> tuple[Path, Path]:
        toolchain_source = self.fetcher.clone_pinned(self.config.sources.toolchain)
        fix_newlib_pthread(toolchain_source)
        musl_source = self.fetcher.clone_pinned(self.config.sources.musl)
        return toolchain_source, musl_source

    def _build_variant(
        self,
        progress: VariantProgress,
        *,
        toolchain_source: Path,
        musl_source: Path,
    ) -> None:
        variant = progress.variant
        host_arch = self.config.host_arch
        prefix = variant.prefix(self.layout.host_tools, host_arch)
        stage = f"toolchain:{variant.name}"

        if prefix.exists():
            shutil.rmtree(prefix)
        prefix.mkdir(parents=True)

        progress.advance(VariantState.CLEANING)
        clean_tree(toolchain_source, runner=self.runner, stage=stage)

        progress.advance(VariantState.CONFIGURING)
        LOG.info("Configuring toolchain variant %s", variant.name)
        self.runner.run(
            CommandSpec(
                variant.configure_argv(prefix=prefix, musl_source=musl_source),
                cwd=toolchain_source,
            ),
            stage=stage,
        )

        progress.advance(VariantState.BUILDING)
        LOG.info("Building toolchain variant %s with %d jobs", variant.name, self.config.jobs)
        self.runner.run(
            CommandSpec(variant.make_argv(jobs=self.config.jobs), cwd=toolchain_source),
            stage=stage,
        )

        marker = variant.marker(self.layout.host_tools, host_arch)
        if not is_marker_present(marker):
            raise EnvironmentStateError(
                "Toolchain build finished but its compiler is missing.",
                hint="Inspect the native build output; the install step did not run.",
                context={"stage": stage, "marker": str(marker)},
            )
        progress.advance(VariantState.BUILT)


def clean_tree(source: Path, *, runner: CommandRunner, stage: str) -> None:
    """Run ``make clean`` and ``make distclean`` in *source* and its first-level subdirectories.

    Either target may fail (an unconfigured tree has nothing to clean).
    """
    LOG.info("Cleaning toolchain tree %s", source)
    directories = [source]
    directories.extend(
        sorted(
            child
            for child in source.iterdir()
            if child.is_dir() and not child.name.startswith(".")
        )
    )
    for directory in directories:
        for goal in ("clean", "distclean"):
            runner.run(CommandSpec(("make", goal), cwd=directory), stage=stage, check=False)


def fix_newlib_pthread(toolchain_source: Path) -> None:
    """Drop newlib's pthread.c dependency on the libnosys config header."""
    path = toolchain_source / NEWLIB_PTHREAD
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise EnvironmentStateError(
            "Toolchain checkout is missing newlib's riscv pthread.c.",
            hint="Delete the toolchain source and its cache archive, then rerun.",
            context={"operation": "fix_newlib_pthread", "path": str(path)},
        ) from exc
    patched = NEWLIB_CONFIG_INCLUDE.sub(NEWLIB_CONFIG_REPLACEMENT, content)
    if patched != content:
        path.write_text(patched, encoding="utf-8")
