"""Cache-backed retrieval of source trees and singleton files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from duobuild.cache import ArtifactCache
from duobuild.fetch.git import clone_argv, clone_pinned
from duobuild.fetch.http import download_file
from duobuild.models import FileSource, GitSource
from duobuild.process import CommandRunner


@dataclass(frozen=True, slots=True)
class Fetcher:
    """Binds the fetch operations to one output root, cache and runner."""

    output_root: Path
    cache: ArtifactCache
    runner: CommandRunner

    def clone_pinned(self, source: GitSource) -> Path:
        return clone_pinned(
            source.repo,
            source.name,
            source.tag,
            output_root=self.output_root,
            cache=self.cache,
            runner=self.runner,
        )

    def download_file(self, source: FileSource) -> Path:
        return download_file(
            source.url,
            source.name,
            output_root=self.output_root,
            cache=self.cache,
        )


__all__ = ["Fetcher", "clone_argv", "clone_pinned", "download_file"]
