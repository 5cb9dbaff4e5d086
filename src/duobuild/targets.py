"""Command-line target routines and the dispatcher that resolves them.

A token ``foo-bar`` names the routine ``target_foo_bar``. All tokens are
resolved before any routine runs, so an unknown token anywhere in the list
stops the invocation before it has side effects. Resolved routines then run in
the order given and the first failure ends the run.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from duobuild.context import BuildContext
from duobuild.dependencies import DependencyReport, install_dependencies
from duobuild.errors import DispatchError
from duobuild.toolchain import ToolchainReport

LOG = logging.getLogger("duobuild.targets")

TARGET_PREFIX = "target_"

Routine = Callable[[], object]


def routine_name(token: str) -> str:
    return TARGET_PREFIX + token.replace("-", "_")


@dataclass(slots=True)
class BuildTargets:
    context: BuildContext

    def target_duo256(self) -> None:
        """Full board build: toolchain, dependencies, SDK, patches, image."""
        self.context.board.build()

    def target_toolchain(self) -> ToolchainReport:
        return self.context.toolchain.run()

    def target_deps(self) -> DependencyReport:
        return install_dependencies(self.context.config.packages, runner=self.context.runner)

    def target_clean(self) -> None:
        _remove_tree(self.context.layout.output)

    def target_distclean(self) -> None:
        self.target_clean()
        _remove_tree(self.context.layout.host_tools)

    def target_run(self) -> None:
        self.context.launcher.launch()


@dataclass(slots=True)
class Dispatcher:
    targets: object

    def available(self) -> tuple[str, ...]:
        return tuple(
            name.removeprefix(TARGET_PREFIX).replace("_", "-")
            for name in sorted(dir(self.targets))
            if name.startswith(TARGET_PREFIX) and callable(getattr(self.targets, name))
        )

    def resolve(self, tokens: Sequence[str]) -> list[tuple[str, Routine]]:
        if not tokens:
            raise DispatchError(
                "No target given.",
                hint=f"Choose from: {', '.join(self.available())}.",
            )
        resolved: list[tuple[str, Routine]] = []
        for token in tokens:
            routine = getattr(self.targets, routine_name(token), None)
            if routine is None or not callable(routine):
                raise DispatchError(
                    f"Not a valid argument {token}",
                    hint=f"Choose from: {', '.join(self.available())}.",
                    context={"token": token},
                )
            resolved.append((token, routine))
        return resolved

    def dispatch(self, tokens: Sequence[str]) -> None:
        for token, routine in self.resolve(tokens):
            LOG.info("==> %s", token)
            routine()


def _remove_tree(path: Path) -> None:
    if path.exists():
        LOG.info("Removing %s", path)
        shutil.rmtree(path)
