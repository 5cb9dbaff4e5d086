"""Ordered mutation of the fetched SDK tree before its native build.

A patches directory holds two kinds of steps: executable scripts, invoked with
the SDK root as their only argument, and ``*.diff`` files, applied strictly
with ``git apply`` from inside the SDK root. The plan orders every script
before every diff, each group by file name. Steps are not idempotent and there
is no rollback: the first failing step aborts the run.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from duobuild.errors import PatchError, ProcessError
from duobuild.models import CommandSpec
from duobuild.process import CommandRunner

LOG = logging.getLogger("duobuild.patches")

DIFF_SUFFIX = ".diff"


class PatchKind(StrEnum):
    SCRIPT = "script"
    DIFF = "diff"


@dataclass(frozen=True, slots=True)
class PatchStep:
    kind: PatchKind
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    def command(self, sdk_root: Path) -> CommandSpec:
        if self.kind is PatchKind.SCRIPT:
            return CommandSpec((str(self.path), str(sdk_root)), cwd=sdk_root)
        return CommandSpec(("git", "apply", str(self.path)), cwd=sdk_root)


@dataclass(frozen=True, slots=True)
class PatchPlan:
    steps: tuple[PatchStep, ...] = ()

    @property
    def scripts(self) -> tuple[PatchStep, ...]:
        return tuple(step for step in self.steps if step.kind is PatchKind.SCRIPT)

    @property
    def diffs(self) -> tuple[PatchStep, ...]:
        return tuple(step for step in self.steps if step.kind is PatchKind.DIFF)

    def __len__(self) -> int:
        return len(self.steps)


def discover(patches_dir: Path) -> PatchPlan:
    """Scan *patches_dir* and return its steps in application order."""
    if not patches_dir.is_dir():
        LOG.info("No patches directory at %s", patches_dir)
        return PatchPlan()

    # Entries keep their own names; a symlinked script sorts by its link name.
    files = sorted(
        (entry.absolute() for entry in patches_dir.iterdir() if entry.is_file()),
        key=lambda path: path.name,
    )
    scripts = [
        PatchStep(PatchKind.SCRIPT, path)
        for path in files
        if path.suffix != DIFF_SUFFIX and os.access(path, os.X_OK)
    ]
    diffs = [PatchStep(PatchKind.DIFF, path) for path in files if path.suffix == DIFF_SUFFIX]
    return PatchPlan(steps=(*scripts, *diffs))


def apply_plan(plan: PatchPlan, sdk_root: Path, *, runner: CommandRunner) -> None:
    for index, step in enumerate(plan.steps, start=1):
        LOG.info("Applying %s patch %d/%d: %s", step.kind, index, len(plan), step.name)
        try:
            result = runner.run(step.command(sdk_root), stage="patch", check=False)
        except ProcessError as exc:
            raise _step_failure(
                step,
                sdk_root,
                returncode="",
                detail=exc.context.get("error", str(exc)),
            ) from exc
        if not result.ok:
            raise _step_failure(
                step,
                sdk_root,
                returncode=str(result.returncode),
                detail=result.stderr[:2000] if result.stderr else "",
            )


def _step_failure(step: PatchStep, sdk_root: Path, *, returncode: str, detail: str) -> PatchError:
    return PatchError(
        f"Patch step {step.name} failed.",
        hint="Patches are not idempotent; restore a clean SDK tree before rerunning.",
        context={
            "step": step.name,
            "kind": str(step.kind),
            "sdk_root": str(sdk_root),
            "returncode": returncode,
            "stderr": detail,
        },
    )
