"""Backend options read from the manifest and per-request tool configuration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from buildbackend.channels import ChannelConfig
from buildbackend.errors import ManifestError
from buildbackend.metadata import ArchiveType, CompressionLevel, PackagingSettings
from buildbackend.observability import StructuredLogger

CONFIG_SECTION = "package.build.configuration"
CONFIG_KEYS = frozenset(
    ("extra-args", "env", "languages", "noarch", "archive-type", "compression-level")
)


@dataclass(frozen=True, slots=True)
class BackendConfig:
    extra_args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    languages: tuple[str, ...] | None = None
    noarch: bool | None = None
    archive_type: ArchiveType = ArchiveType.CONDA
    compression_level: CompressionLevel = CompressionLevel.DEFAULT

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> BackendConfig:
        if not payload:
            return cls()
        unknown = sorted(set(payload) - CONFIG_KEYS)
        if unknown:
            raise ManifestError(
                f"Unknown keys in `{CONFIG_SECTION}`: {', '.join(unknown)}.",
                hint=f"Supported keys: {', '.join(sorted(CONFIG_KEYS))}.",
                context={"keys": ",".join(unknown)},
            )

        noarch = payload.get("noarch")
        if noarch is not None and not isinstance(noarch, bool):
            raise ManifestError(f"Invalid `{CONFIG_SECTION}.noarch` value; expected a boolean.")
        languages = payload.get("languages")
        return cls(
            extra_args=tuple(_str_list(payload, "extra-args")),
            env=_str_table(payload, "env"),
            languages=None if languages is None else tuple(_str_list(payload, "languages")),
            noarch=noarch,
            archive_type=_choice(payload, "archive-type", ArchiveType, ArchiveType.CONDA),
            compression_level=_choice(
                payload, "compression-level", CompressionLevel, CompressionLevel.DEFAULT
            ),
        )

    def packaging_settings(self) -> PackagingSettings:
        return PackagingSettings.from_args(self.archive_type, self.compression_level)


@dataclass(frozen=True, slots=True)
class ToolConfiguration:
    """Settings shared by the solver and execution engine for one request."""

    channel_config: ChannelConfig
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    cache_dir: Path | None = None
    testing: bool = False
    keep_build: bool = False


def _str_list(payload: Mapping[str, Any], key: str) -> list[str]:
    value = payload.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ManifestError(f"Invalid `{CONFIG_SECTION}.{key}` value; expected a list of strings.")
    return list(value)


def _str_table(payload: Mapping[str, Any], key: str) -> dict[str, str]:
    value = payload.get(key, {})
    if not isinstance(value, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ManifestError(f"Invalid `{CONFIG_SECTION}.{key}` value; expected a table of strings.")
    return dict(value)


def _choice(payload: Mapping[str, Any], key: str, enum: Any, default: Any) -> Any:
    value = payload.get(key)
    if value is None:
        return default
    try:
        return enum(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum)
        raise ManifestError(
            f"Invalid `{CONFIG_SECTION}.{key}` value '{value}'.",
            hint=f"Use one of: {allowed}.",
        ) from exc


__all__ = [
    "BackendConfig",
    "ToolConfiguration",
]
