"""Typed backend error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across protocol responses."""

    MANIFEST = "E_MANIFEST"
    PLATFORM = "E_PLATFORM"
    SPEC = "E_SPEC"
    CHANNEL = "E_CHANNEL"
    RESOLUTION = "E_RESOLUTION"
    BUILD = "E_BUILD"
    IO = "E_IO"
    PROTOCOL = "E_PROTOCOL"


class BuildBackendError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: dict[str, str]

    default_code: ErrorCode = ErrorCode.PROTOCOL

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = (code or self.default_code).value
        self.hint = hint
        self.context = dict(context or {})

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def with_context(self, **values: str) -> BuildBackendError:
        """Add context keys that are not already set and return ``self``."""
        for key, value in values.items():
            self.context.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "kind": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ManifestError(BuildBackendError):
    default_code = ErrorCode.MANIFEST


class ManifestLoadError(ManifestError):
    pass


class MissingPackageSection(ManifestError):
    pass


class MissingNameField(ManifestError):
    pass


class MissingVersionField(ManifestError):
    pass


class PlatformError(BuildBackendError):
    default_code = ErrorCode.PLATFORM


class UnsupportedPlatform(PlatformError):
    pass


class DetectionError(PlatformError):
    pass


class SpecError(BuildBackendError):
    default_code = ErrorCode.SPEC


class InvalidPackageName(SpecError):
    pass


class InvalidSpec(SpecError):
    pass


class ChannelResolutionFailed(BuildBackendError):
    default_code = ErrorCode.CHANNEL


class ResolutionError(BuildBackendError):
    default_code = ErrorCode.RESOLUTION


class BuildError(BuildBackendError):
    default_code = ErrorCode.BUILD


class IoError(BuildBackendError):
    default_code = ErrorCode.IO


class DirectoryCreationFailed(IoError):
    pass


class ProtocolStateError(BuildBackendError):
    default_code = ErrorCode.PROTOCOL


class UnknownMethodError(ProtocolStateError):
    pass


class InvalidRequestError(ProtocolStateError):
    pass


PlatformUnsupported = UnsupportedPlatform


@contextmanager
def tagged(**context: str | None) -> Iterator[None]:
    """Attach *context* to any backend error raised inside the block."""
    try:
        yield
    except BuildBackendError as exc:
        exc.with_context(**{key: value for key, value in context.items() if value is not None})
        raise


__all__ = [
    "BuildBackendError",
    "BuildError",
    "ChannelResolutionFailed",
    "DetectionError",
    "DirectoryCreationFailed",
    "ErrorCode",
    "InvalidPackageName",
    "InvalidRequestError",
    "InvalidSpec",
    "IoError",
    "ManifestError",
    "ManifestLoadError",
    "MissingNameField",
    "MissingPackageSection",
    "MissingVersionField",
    "PlatformError",
    "PlatformUnsupported",
    "ProtocolStateError",
    "ResolutionError",
    "SpecError",
    "UnknownMethodError",
    "UnsupportedPlatform",
    "tagged",
]
