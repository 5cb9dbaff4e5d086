"""Typed build error model with stable, machine-readable error codes.

Every hard failure in the pipeline is raised as one of these and unwinds to the
CLI untouched. Nothing in the core catches them to repair partial state: a
half-built toolchain or half-patched SDK is reported, never salvaged.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the pipeline."""

    VALIDATION = "E_VALIDATION"
    ENVIRONMENT = "E_ENVIRONMENT"
    PROCESS = "E_PROCESS"
    PATCH = "E_PATCH"
    CACHE = "E_CACHE"
    DISPATCH = "E_DISPATCH"


class DuoBuildError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(DuoBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class EnvironmentStateError(DuoBuildError):
    """Prior on-disk state is inconsistent (e.g. an empty source directory)."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.ENVIRONMENT, hint=hint, context=context)


class ProcessError(DuoBuildError):
    """An external command exited non-zero."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PROCESS, hint=hint, context=context)


class PatchError(DuoBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PATCH, hint=hint, context=context)


class CacheError(DuoBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CACHE, hint=hint, context=context)


class DispatchError(DuoBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.DISPATCH, hint=hint, context=context)


__all__ = [
    "CacheError",
    "DispatchError",
    "DuoBuildError",
    "EnvironmentStateError",
    "ErrorCode",
    "PatchError",
    "ProcessError",
    "ValidationError",
]
