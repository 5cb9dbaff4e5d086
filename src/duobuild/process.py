"""External command execution.

Commands run one at a time and block until they exit; there are no timeouts.
By default the child inherits the invoking terminal so long native builds
stream their own output.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from duobuild.errors import ProcessError
from duobuild.models import CommandResult, CommandSpec
from duobuild.observability import StructuredLogger

LOG = logging.getLogger("duobuild.process")


class CommandRunner(Protocol):
    def run(
        self,
        command: CommandSpec,
        *,
        stage: str,
        check: bool = True,
        capture: bool = False,
    ) -> CommandResult:
        """Run *command* to completion, raising ``ProcessError`` on failure when *check*."""


@dataclass(slots=True)
class SubprocessRunner:
    events: StructuredLogger = field(default_factory=StructuredLogger)

    def run(
        self,
        command: CommandSpec,
        *,
        stage: str,
        check: bool = True,
        capture: bool = False,
    ) -> CommandResult:
        LOG.info("[%s] $ %s", stage, command.render())
        env = {**os.environ, **command.env} if command.env else None
        try:
            completed = subprocess.run(
                list(command.argv),
                cwd=str(command.cwd) if command.cwd is not None else None,
                env=env,
                capture_output=capture,
                text=True,
                check=False,
            )
        except OSError as exc:
            self.events.log(
                stage=stage,
                operation="command",
                message=command.render(),
                level="error",
                extra={"error": str(exc), "cwd": _cwd_text(command.cwd)},
            )
            raise ProcessError(
                "Command could not be started.",
                hint="Check that the program exists and is executable.",
                context={
                    "stage": stage,
                    "command": command.render(),
                    "cwd": _cwd_text(command.cwd),
                    "errno": str(exc.errno),
                    "error": str(exc),
                },
            ) from exc
        result = CommandResult(
            command=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        self.events.log(
            stage=stage,
            operation="command",
            message=command.render(),
            level="info" if result.ok else "error",
            extra={"returncode": result.returncode, "cwd": _cwd_text(command.cwd)},
        )
        if check and not result.ok:
            raise command_failure(result, stage=stage)
        if not result.ok:
            LOG.debug("Ignoring exit status %s of: %s", result.returncode, command.render())
        return result


def command_failure(result: CommandResult, *, stage: str) -> ProcessError:
    return ProcessError(
        f"Command failed with exit status {result.returncode}.",
        hint="Inspect the command output above; the run stops at the first failure.",
        context={
            "stage": stage,
            "command": result.command.render(),
            "cwd": _cwd_text(result.command.cwd),
            "returncode": str(result.returncode),
            "stderr": result.stderr[:2000] if result.stderr else "",
        },
    )


def _cwd_text(cwd: Path | None) -> str:
    return str(cwd) if cwd is not None else ""
