"""Shared test fixtures."""

from __future__ import annotations

import stat
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from duobuild.config import BuildConfig
from duobuild.layout import Layout
from duobuild.models import CommandResult, CommandSpec, FileSource, GitSource
from duobuild.process import command_failure

Handler = Callable[[CommandSpec], "int | tuple[int, str] | None"]


@dataclass
class RecordingRunner:
    """Command runner double that records commands instead of executing them."""

    handler: Handler | None = None
    commands: list[CommandSpec] = field(default_factory=list)
    stages: list[str] = field(default_factory=list)

    def run(
        self,
        command: CommandSpec,
        *,
        stage: str,
        check: bool = True,
        capture: bool = False,
    ) -> CommandResult:
        self.commands.append(command)
        self.stages.append(stage)
        outcome = self.handler(command) if self.handler is not None else None
        returncode, stdout = 0, ""
        if isinstance(outcome, tuple):
            returncode, stdout = outcome
        elif isinstance(outcome, int):
            returncode = outcome
        result = CommandResult(command=command, returncode=returncode, stdout=stdout)
        if check and not result.ok:
            raise command_failure(result, stage=stage)
        return result

    @property
    def argvs(self) -> list[tuple[str, ...]]:
        return [command.argv for command in self.commands]


@dataclass
class FakeFetcher:
    """Creates source trees on disk the way a real checkout would lay them out."""

    output_root: Path
    calls: list[str] = field(default_factory=list)
    populate: dict[str, Callable[[Path], None]] = field(default_factory=dict)

    def clone_pinned(self, source: GitSource) -> Path:
        self.calls.append(source.name)
        path = self.output_root / source.name
        path.mkdir(parents=True, exist_ok=True)
        if source.name in self.populate:
            self.populate[source.name](path)
        return path

    def download_file(self, source: FileSource) -> Path:
        self.calls.append(source.name)
        self.output_root.mkdir(parents=True, exist_ok=True)
        path = self.output_root / source.name
        path.write_bytes(b"downloaded\n")
        return path


def make_executable(path: Path, content: str = "#!/bin/sh\nexit 0\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def create_git_repo(path: Path, *, tag: str, files: dict[str, str]) -> Path:
    """Commit *files* and tag them, then commit untagged edits on top."""
    path.mkdir(parents=True, exist_ok=True)
    run_git(["init"], cwd=path)
    run_git(["checkout", "-b", "main"], cwd=path)
    run_git(["config", "user.email", "duo@example.com"], cwd=path)
    run_git(["config", "user.name", "Duo Test"], cwd=path)

    for relpath, content in files.items():
        target = path / relpath
        if content.startswith("#!"):
            make_executable(target, content)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
    run_git(["add", "-A"], cwd=path)
    run_git(["commit", "-m", "release"], cwd=path)
    run_git(["tag", tag], cwd=path)

    for relpath in files:
        (path / relpath).write_text("untagged work\n", encoding="utf-8")
    run_git(["commit", "-am", "after release"], cwd=path)
    return path


def run_git(argv: list[str], *, cwd: Path) -> str:
    completed = subprocess.run(
        ["git", *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        raise RuntimeError(f"git {' '.join(argv)} failed: {completed.stderr.strip()}")
    return completed.stdout.strip()


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def layout(tmp_path: Path) -> Layout:
    return Layout.from_root(tmp_path / "root")


@pytest.fixture
def config() -> BuildConfig:
    return BuildConfig(host_arch="arm64", jobs=4)
