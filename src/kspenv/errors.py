"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across API surfaces."""

    VALIDATION = "E_VALIDATION"
    INTEGRITY = "E_INTEGRITY"
    UNAVAILABLE = "E_UNAVAILABLE"
    UNSUPPORTED_COMPONENT = "E_UNSUPPORTED_COMPONENT"
    UNSUPPORTED_TARGET = "E_UNSUPPORTED_TARGET"
    FILE_READ = "E_FILE_READ"
    BUILD = "E_BUILD"
    LOCKFILE = "E_LOCKFILE"
    POLICY = "E_POLICY"


class KspenvError(Exception):
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


class _CodedError(KspenvError):
    _code: ErrorCode

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=self._code, hint=hint, context=context)


class ValidationError(_CodedError):
    _code = ErrorCode.VALIDATION


class IntegrityError(_CodedError):
    """Fetched content does not match its pinned content hash."""

    _code = ErrorCode.INTEGRITY


class UnavailableError(_CodedError):
    """No upstream toolchain satisfies a floating query."""

    _code = ErrorCode.UNAVAILABLE


class UnsupportedComponentError(_CodedError):
    _code = ErrorCode.UNSUPPORTED_COMPONENT


class UnsupportedTargetError(_CodedError):
    _code = ErrorCode.UNSUPPORTED_TARGET


class FileReadError(_CodedError):
    """A configuration-time text source is missing or unreadable."""

    _code = ErrorCode.FILE_READ


class BuildError(_CodedError):
    """The downstream build process exited non-zero."""

    _code = ErrorCode.BUILD


class LockfileError(_CodedError):
    _code = ErrorCode.LOCKFILE


class PolicyError(_CodedError):
    _code = ErrorCode.POLICY


__all__ = [
    "BuildError",
    "ErrorCode",
    "FileReadError",
    "IntegrityError",
    "KspenvError",
    "LockfileError",
    "PolicyError",
    "UnavailableError",
    "UnsupportedComponentError",
    "UnsupportedTargetError",
    "ValidationError",
]
