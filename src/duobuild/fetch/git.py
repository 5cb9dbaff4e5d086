"""Shallow, tag-pinned git fetch through the archive cache."""

from __future__ import annotations

import logging
from pathlib import Path

from duobuild.cache import ArtifactCache
from duobuild.layout import reject_empty_destination
from duobuild.models import CommandSpec
from duobuild.process import CommandRunner

LOG = logging.getLogger("duobuild.fetch")


def clone_pinned(
    repo: str,
    name: str,
    tag: str | None,
    *,
    output_root: Path,
    cache: ArtifactCache,
    runner: CommandRunner,
) -> Path:
    """Fetch *repo* at *tag* into ``output_root / name``, preferring the cache.

    An existing empty destination is rejected before the cache is consulted.
    """
    destination = output_root / name
    reject_empty_destination(destination, operation="clone_pinned")

    archive = cache.lookup(name, tag)
    if archive is not None:
        LOG.info("Package [%s] is cached. Using cached version", name)
        return cache.materialize(archive, output_root)

    LOG.info("Package [%s] is not cached. Retrieving", name)
    output_root.mkdir(parents=True, exist_ok=True)
    stage = f"fetch:{name}"
    runner.run(CommandSpec(clone_argv(repo, destination, tag=tag)), stage=stage)
    runner.run(
        CommandSpec(("git", "submodule", "update", "--init", "--recursive"), cwd=destination),
        stage=stage,
    )
    cache.store(name, tag, destination)
    return destination


def clone_argv(repo: str, destination: Path, *, tag: str | None) -> tuple[str, ...]:
    argv = ["git", "clone"]
    if tag:
        argv.extend(["-b", tag, "--single-branch"])
    argv.extend(["--depth", "1", repo, str(destination)])
    return tuple(argv)
