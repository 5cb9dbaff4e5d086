"""Fixed on-disk layout relative to an install root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from duobuild.errors import EnvironmentStateError


@dataclass(frozen=True, slots=True)
class Layout:
    root: Path
    output: Path
    host_tools: Path
    build_tools: Path
    pkgcache: Path
    patches: Path

    @classmethod
    def from_root(cls, root: str | Path) -> Layout:
        base = Path(root).resolve()
        return cls(
            root=base,
            output=base / "output",
            host_tools=base / "host-tools",
            build_tools=base / "build-tools",
            pkgcache=base / "pkgcache",
            patches=base / "patches",
        )

    def source_tree(self, name: str) -> Path:
        """Return the output directory a fetched package named *name* lands in."""
        return self.output / name


def is_empty_dir(path: Path) -> bool:
    return path.is_dir() and not any(path.iterdir())


def reject_empty_destination(path: Path, *, operation: str) -> None:
    """Fail when *path* exists as an empty directory.

    An empty destination is what an interrupted fetch leaves behind; it is never
    cleaned up automatically.
    """
    if is_empty_dir(path):
        raise EnvironmentStateError(
            f"{path.name} already exists in output as an empty directory.",
            hint="A previous run was interrupted. Remove the directory and rerun.",
            context={"operation": operation, "path": str(path)},
        )
