"""Cache key derivation."""

from __future__ import annotations

from dataclasses import dataclass

from duobuild.errors import ValidationError

ARCHIVE_SUFFIX = ".tbz"


@dataclass(frozen=True, slots=True)
class CacheKey:
    name: str
    tag: str

    def __post_init__(self) -> None:
        validate_name(self.name)
        if not self.tag or "/" in self.tag:
            raise ValidationError(
                "Cache tag must be a non-empty string without path separators.",
                context={"operation": "cache_key", "name": self.name, "tag": self.tag},
            )

    @property
    def archive_name(self) -> str:
        return f"{self.name}-{self.tag}{ARCHIVE_SUFFIX}"


def validate_name(name: str) -> str:
    if not name or "/" in name or name in {".", ".."}:
        raise ValidationError(
            "Cache entry name must be a plain file name.",
            context={"operation": "cache_key", "name": name},
        )
    return name
