"""Archive cache for fetched source trees and singleton downloads."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path

from duobuild.cache.keys import CacheKey, validate_name
from duobuild.errors import CacheError, EnvironmentStateError, ValidationError

LOG = logging.getLogger("duobuild.cache")


class ArtifactCache:
    """Maps ``(name, tag)`` to a bzip2 tar archive under a single directory.

    Entries are immutable: once an archive exists it is never rewritten. A tree
    materialized from an entry always lands in ``destination_root / name``, so
    two tags of the same name share one extraction directory. Callers must keep
    names unique.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def lookup(self, name: str, tag: str | None) -> Path | None:
        if not tag:
            return None
        archive = self.root / CacheKey(name, tag).archive_name
        if archive.is_file():
            return archive
        return None

    def store(self, name: str, tag: str | None, directory: str | Path) -> Path | None:
        """Archive *directory* as ``name`` under ``(name, tag)``.

        Without a tag nothing is cached and ``None`` is returned.
        """
        if not tag:
            LOG.debug("Package [%s] has no tag; not caching", name)
            return None
        key = CacheKey(name, tag)
        source = Path(directory)
        if not source.is_dir():
            raise ValidationError(
                "Only directories can be stored as cache archives.",
                context={"operation": "cache_store", "path": str(source)},
            )
        archive = self.root / key.archive_name
        if archive.exists():
            LOG.debug("Cache entry %s already exists; keeping it", archive.name)
            return archive

        LOG.info("Caching package [%s]", name)
        self.root.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{key.archive_name}.", dir=self.root)
        os.close(fd)
        temp_path = Path(temp_name)
        try:
            with tarfile.open(temp_path, "w:bz2") as tar:
                tar.add(source, arcname=name)
            os.replace(temp_path, archive)
        finally:
            if temp_path.exists():
                temp_path.unlink()
        return archive

    def materialize(self, archive: str | Path, destination_root: str | Path) -> Path:
        """Extract *archive* into *destination_root* and return the restored tree.

        Existing non-directory paths the archive writes are unlinked first, the
        way GNU tar replaces them, so read-only files left by a previous
        checkout (git objects are 0444) do not block the extraction.
        """
        archive_path = Path(archive)
        root = Path(destination_root)
        root.mkdir(parents=True, exist_ok=True)
        try:
            tar = tarfile.open(archive_path, "r:bz2")
        except (tarfile.TarError, EOFError, OSError) as exc:
            raise _unreadable_archive(archive_path, exc) from exc
        with tar:
            try:
                members = tar.getmembers()
            except (tarfile.TarError, EOFError, OSError) as exc:
                raise _unreadable_archive(archive_path, exc) from exc
            top_level = {member.name.split("/", 1)[0] for member in members}
            if len(top_level) != 1:
                raise CacheError(
                    "Cache archive must contain exactly one top-level directory.",
                    hint="Delete the archive; it will be rebuilt by the next fetch.",
                    context={
                        "operation": "cache_materialize",
                        "archive": str(archive_path),
                        "entries": ", ".join(sorted(top_level)),
                    },
                )
            try:
                _clear_overwritten(root, members)
                tar.extractall(root, filter="tar")
            except (tarfile.TarError, EOFError) as exc:
                raise _unreadable_archive(archive_path, exc) from exc
            except OSError as exc:
                raise EnvironmentStateError(
                    "Cached package could not be written into the output tree.",
                    hint="Check ownership and permissions of the output directory.",
                    context={
                        "operation": "cache_materialize",
                        "archive": str(archive_path),
                        "destination": str(root),
                        "path": str(exc.filename or ""),
                        "error": str(exc),
                    },
                ) from exc
        return root / top_level.pop()

    def lookup_file(self, name: str) -> Path | None:
        path = self.root / validate_name(name)
        if path.is_file():
            return path
        return None

    def store_file(self, name: str, path: str | Path) -> Path:
        """Copy a single downloaded file into the cache under *name*."""
        target = self.root / validate_name(name)
        if target.exists():
            return target
        self.root.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{name}.", dir=self.root)
        os.close(fd)
        temp_path = Path(temp_name)
        try:
            shutil.copyfile(path, temp_path)
            os.replace(temp_path, target)
        finally:
            if temp_path.exists():
                temp_path.unlink()
        return target


def _clear_overwritten(root: Path, members: list[tarfile.TarInfo]) -> None:
    base = root.resolve()
    for member in members:
        target = root / member.name
        if not target.is_symlink() and not target.exists():
            continue
        if not target.parent.resolve().is_relative_to(base):
            continue
        if member.isdir():
            if target.is_dir() and not target.is_symlink():
                continue
            target.unlink()
        elif target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()


def _unreadable_archive(archive: Path, exc: BaseException) -> CacheError:
    return CacheError(
        "Cache archive could not be extracted.",
        hint="Delete the corrupted archive and rerun to fetch it again.",
        context={
            "operation": "cache_materialize",
            "archive": str(archive),
            "error": str(exc),
        },
    )
