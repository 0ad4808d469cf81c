"""Request and result shapes of the backend protocol procedures."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from buildbackend.channels import DEFAULT_CHANNEL_ALIAS
from buildbackend.errors import BuildBackendError, InvalidRequestError
from buildbackend.platforms import Platform, PlatformAndVirtualPackages, VirtualPackage

INITIALIZE = "initialize"
NEGOTIATE_CAPABILITIES = "negotiateCapabilities"
CONDA_GET_METADATA = "conda/getMetadata"
CONDA_BUILD = "conda/build"


@dataclass(frozen=True, slots=True)
class ChannelConfiguration:
    base_url: str = DEFAULT_CHANNEL_ALIAS

    @classmethod
    def from_dict(cls, payload: Any) -> ChannelConfiguration:
        if payload is None:
            return cls()
        payload = _as_dict(payload, "channelConfiguration")
        return cls(base_url=_optional_str(payload, "baseUrl") or DEFAULT_CHANNEL_ALIAS)

    def to_dict(self) -> dict[str, Any]:
        return {"baseUrl": self.base_url}


@dataclass(frozen=True, slots=True)
class FrontendCapabilities:
    """Capabilities declared by the frontend; currently informational only."""

    values: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Any) -> FrontendCapabilities:
        if payload is None:
            return cls()
        return cls(values=dict(_as_dict(payload, "capabilities")))


@dataclass(frozen=True, slots=True)
class BackendCapabilities:
    provides_conda_metadata: bool | None = None
    provides_conda_build: bool | None = None

    @classmethod
    def static(cls) -> BackendCapabilities:
        return cls(provides_conda_metadata=True, provides_conda_build=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "providesCondaMetadata": self.provides_conda_metadata,
            "providesCondaBuild": self.provides_conda_build,
        }


@dataclass(frozen=True, slots=True)
class InitializeParams:
    manifest_path: Path
    cache_directory: Path | None = None
    capabilities: FrontendCapabilities | None = None

    @classmethod
    def from_dict(cls, payload: Any) -> InitializeParams:
        payload = _as_dict(payload, "params")
        cache_directory = _optional_str(payload, "cacheDirectory")
        capabilities = payload.get("capabilities")
        return cls(
            manifest_path=Path(_required_str(payload, "manifestPath")),
            cache_directory=Path(cache_directory) if cache_directory else None,
            capabilities=None
            if capabilities is None
            else FrontendCapabilities.from_dict(capabilities),
        )


@dataclass(frozen=True, slots=True)
class InitializeResult:
    capabilities: BackendCapabilities | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.capabilities is None:
            return {}
        return {"capabilities": self.capabilities.to_dict()}


@dataclass(frozen=True, slots=True)
class NegotiateCapabilitiesParams:
    capabilities: FrontendCapabilities = field(default_factory=FrontendCapabilities)

    @classmethod
    def from_dict(cls, payload: Any) -> NegotiateCapabilitiesParams:
        payload = _as_dict(payload or {}, "params")
        return cls(capabilities=FrontendCapabilities.from_dict(payload.get("capabilities")))


@dataclass(frozen=True, slots=True)
class NegotiateCapabilitiesResult:
    capabilities: BackendCapabilities

    def to_dict(self) -> dict[str, Any]:
        return {"capabilities": self.capabilities.to_dict()}


@dataclass(frozen=True, slots=True)
class CondaMetadataParams:
    work_directory: Path
    channel_configuration: ChannelConfiguration = field(default_factory=ChannelConfiguration)
    channel_base_urls: tuple[str, ...] | None = None
    build_platform: PlatformAndVirtualPackages | None = None
    host_platform: PlatformAndVirtualPackages | None = None

    @classmethod
    def from_dict(cls, payload: Any) -> CondaMetadataParams:
        payload = _as_dict(payload, "params")
        return cls(
            work_directory=Path(_required_str(payload, "workDirectory")),
            channel_configuration=ChannelConfiguration.from_dict(
                payload.get("channelConfiguration")
            ),
            channel_base_urls=_optional_str_tuple(payload, "channelBaseUrls"),
            build_platform=_optional_platform(payload, "buildPlatform"),
            host_platform=_optional_platform(payload, "hostPlatform"),
        )


@dataclass(frozen=True, slots=True)
class CondaPackageMetadata:
    name: str
    version: str
    build: str
    build_number: int
    subdir: str
    depends: tuple[str, ...] = ()
    constraints: tuple[str, ...] = ()
    license: str | None = None
    license_family: str | None = None
    noarch: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "build": self.build,
            "buildNumber": self.build_number,
            "subdir": self.subdir,
            "depends": list(self.depends),
            "constraints": list(self.constraints),
            "license": self.license,
            "licenseFamily": self.license_family,
            "noarch": self.noarch,
        }


@dataclass(frozen=True, slots=True)
class CondaMetadataResult:
    packages: tuple[CondaPackageMetadata, ...]
    input_globs: tuple[str, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "packages": [package.to_dict() for package in self.packages],
            "inputGlobs": None if self.input_globs is None else list(self.input_globs),
        }


@dataclass(frozen=True, slots=True)
class CondaBuildParams:
    work_directory: Path
    channel_configuration: ChannelConfiguration = field(default_factory=ChannelConfiguration)
    channel_base_urls: tuple[str, ...] | None = None
    host_platform: PlatformAndVirtualPackages | None = None
    build_platform_virtual_packages: tuple[VirtualPackage, ...] | None = None

    @classmethod
    def from_dict(cls, payload: Any) -> CondaBuildParams:
        payload = _as_dict(payload, "params")
        virtual_packages = payload.get("buildPlatformVirtualPackages")
        return cls(
            work_directory=Path(_required_str(payload, "workDirectory")),
            channel_configuration=ChannelConfiguration.from_dict(
                payload.get("channelConfiguration")
            ),
            channel_base_urls=_optional_str_tuple(payload, "channelBaseUrls"),
            host_platform=_optional_platform(payload, "hostPlatform"),
            build_platform_virtual_packages=None
            if virtual_packages is None
            else _virtual_packages(virtual_packages, "buildPlatformVirtualPackages"),
        )


@dataclass(frozen=True, slots=True)
class CondaBuiltPackage:
    output_file: Path
    input_globs: tuple[str, ...]
    name: str
    version: str
    build: str
    subdir: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "outputFile": str(self.output_file),
            "inputGlobs": list(self.input_globs),
            "name": self.name,
            "version": self.version,
            "build": self.build,
            "subdir": self.subdir,
        }


@dataclass(frozen=True, slots=True)
class CondaBuildResult:
    packages: tuple[CondaBuiltPackage, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"packages": [package.to_dict() for package in self.packages]}


def _as_dict(payload: Any, key: str) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise InvalidRequestError(f"Invalid request `{key}` value; expected an object.")
    return dict(payload)


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidRequestError(f"Invalid or missing request field `{key}`.")
    return value


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequestError(f"Invalid request field `{key}`; expected a string.")
    return value


def _optional_str_tuple(payload: dict[str, Any], key: str) -> tuple[str, ...] | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidRequestError(f"Invalid request field `{key}`; expected a list of strings.")
    return tuple(value)


def _optional_platform(payload: dict[str, Any], key: str) -> PlatformAndVirtualPackages | None:
    value = payload.get(key)
    if value is None:
        return None
    value = _as_dict(value, key)
    try:
        platform = Platform.parse(_required_str(value, "platform"))
    except BuildBackendError as exc:
        raise InvalidRequestError(
            f"Invalid request field `{key}.platform`.",
            context={"platform": str(value.get("platform"))},
        ) from exc
    virtual_packages = value.get("virtualPackages")
    return PlatformAndVirtualPackages(
        platform=platform,
        virtual_packages=None
        if virtual_packages is None
        else _virtual_packages(virtual_packages, f"{key}.virtualPackages"),
    )


def _virtual_packages(value: Any, key: str) -> tuple[VirtualPackage, ...]:
    if not isinstance(value, list):
        raise InvalidRequestError(f"Invalid request field `{key}`; expected a list.")
    packages: list[VirtualPackage] = []
    for item in value:
        if isinstance(item, str):
            packages.append(VirtualPackage.parse(item))
        elif isinstance(item, Mapping) and isinstance(item.get("name"), str):
            packages.append(
                VirtualPackage(
                    name=item["name"],
                    version=str(item.get("version") or "0"),
                    build_string=str(item.get("buildString") or "0"),
                )
            )
        else:
            raise InvalidRequestError(f"Invalid entry in request field `{key}`.")
    return tuple(packages)


__all__ = [
    "CONDA_BUILD",
    "CONDA_GET_METADATA",
    "INITIALIZE",
    "NEGOTIATE_CAPABILITIES",
    "BackendCapabilities",
    "ChannelConfiguration",
    "CondaBuildParams",
    "CondaBuildResult",
    "CondaBuiltPackage",
    "CondaMetadataParams",
    "CondaMetadataResult",
    "CondaPackageMetadata",
    "FrontendCapabilities",
    "InitializeParams",
    "InitializeResult",
    "NegotiateCapabilitiesParams",
    "NegotiateCapabilitiesResult",
]
