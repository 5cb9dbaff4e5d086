"""Core typed dataclasses shared by the pipeline stages."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True, slots=True)
class CommandSpec:
    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] = field(default_factory=dict)

    def render(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True, slots=True)
class CommandResult:
    command: CommandSpec
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True, slots=True)
class GitSource:
    """A version-controlled source pinned to one tag or branch."""

    repo: str
    name: str
    tag: str


@dataclass(frozen=True, slots=True)
class FileSource:
    """A singleton artifact fetched by plain download."""

    url: str
    name: str


__all__ = ["CommandResult", "CommandSpec", "FileSource", "GitSource"]
