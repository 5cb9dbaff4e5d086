"""Wiring of one build run: layout, configuration and the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from duobuild.cache import ArtifactCache
from duobuild.config import BuildConfig
from duobuild.deploy import QemuLauncher
from duobuild.fetch import Fetcher
from duobuild.layout import Layout
from duobuild.observability import StructuredLogger
from duobuild.process import CommandRunner, SubprocessRunner
from duobuild.sdk import BoardBuilder
from duobuild.toolchain import ToolchainBuilder


@dataclass(slots=True)
class BuildContext:
    layout: Layout
    config: BuildConfig
    runner: CommandRunner
    events: StructuredLogger = field(default_factory=StructuredLogger)
    cache: ArtifactCache = field(init=False)
    fetcher: Fetcher = field(init=False)
    toolchain: ToolchainBuilder = field(init=False)
    board: BoardBuilder = field(init=False)
    launcher: QemuLauncher = field(init=False)

    def __post_init__(self) -> None:
        self.cache = ArtifactCache(self.layout.pkgcache)
        self.fetcher = Fetcher(output_root=self.layout.output, cache=self.cache, runner=self.runner)
        self.toolchain = ToolchainBuilder(
            layout=self.layout,
            config=self.config,
            fetcher=self.fetcher,
            runner=self.runner,
        )
        self.board = BoardBuilder(
            layout=self.layout,
            config=self.config,
            fetcher=self.fetcher,
            runner=self.runner,
            toolchain=self.toolchain,
        )
        self.launcher = QemuLauncher(
            layout=self.layout,
            config=self.config,
            fetcher=self.fetcher,
            runner=self.runner,
            build_board=self.board.build,
        )

    @classmethod
    def create(
        cls,
        root: str | Path,
        *,
        config: BuildConfig | None = None,
        runner: CommandRunner | None = None,
        events: StructuredLogger | None = None,
    ) -> BuildContext:
        events = events if events is not None else StructuredLogger()
        return cls(
            layout=Layout.from_root(root),
            config=config if config is not None else BuildConfig(),
            runner=runner if runner is not None else SubprocessRunner(events=events),
            events=events,
        )
