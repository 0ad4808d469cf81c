"""Project manifest model and TOML loader."""

from __future__ import annotations

import tomllib
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from buildbackend.channels import ChannelConfig, resolve_channels
from buildbackend.errors import (
    ManifestLoadError,
    MissingNameField,
    MissingPackageSection,
    MissingVersionField,
)
from buildbackend.platforms import Platform
from buildbackend.specs import PackageName, PixiSpec

FAMILY_SELECTORS = ("unix", "linux", "osx", "win")


class SpecType(StrEnum):
    BUILD = "build"
    HOST = "host"
    RUN = "run"

    @property
    def table_key(self) -> str:
        return f"{self.value}-dependencies"


class Dependencies:
    """Insertion-ordered mapping of package name to abstract spec.

    Each package name appears at most once; :meth:`insert` never replaces an
    existing entry.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[tuple[PackageName, PixiSpec]] = ()) -> None:
        self._entries: dict[PackageName, PixiSpec] = {}
        for name, spec in entries:
            self.insert(name, spec)

    @classmethod
    def merged(cls, groups: Iterable[Dependencies]) -> Dependencies:
        """Union of *groups*; the first group declaring a package wins."""
        result = cls()
        for group in groups:
            for name, spec in group.items():
                result.insert(name, spec)
        return result

    def insert(self, name: PackageName | str, spec: PixiSpec) -> bool:
        key = _as_name(name)
        if key in self._entries:
            return False
        self._entries[key] = spec
        return True

    def contains_key(self, name: PackageName | str) -> bool:
        return _as_name(name) in self._entries

    def get(self, name: PackageName | str) -> PixiSpec | None:
        return self._entries.get(_as_name(name))

    def names(self) -> tuple[PackageName, ...]:
        return tuple(self._entries)

    def items(self) -> Iterator[tuple[PackageName, PixiSpec]]:
        return iter(self._entries.items())

    def copy(self) -> Dependencies:
        return Dependencies(self.items())

    def __contains__(self, name: object) -> bool:
        if isinstance(name, (str, PackageName)):
            return self.contains_key(name)
        return False

    def __iter__(self) -> Iterator[PackageName]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dependencies):
            return NotImplemented
        return list(self._entries.items()) == list(other._entries.items())

    def __repr__(self) -> str:
        inner = ", ".join(f"{name}={spec!r}" for name, spec in self._entries.items())
        return f"Dependencies({inner})"


def _as_name(name: PackageName | str) -> PackageName:
    return name if isinstance(name, PackageName) else PackageName.parse(name)


@dataclass(frozen=True, slots=True)
class TargetSelector:
    """Either a concrete platform or a platform family (``unix``, ``linux``, ``osx``, ``win``)."""

    value: str

    @classmethod
    def parse(cls, raw: str) -> TargetSelector:
        if raw in FAMILY_SELECTORS:
            return cls(raw)
        try:
            return cls(Platform(raw).value)
        except ValueError as exc:
            raise ManifestLoadError(
                f"Unknown target selector '{raw}'.",
                hint=f"Use a platform or one of: {', '.join(FAMILY_SELECTORS)}.",
                context={"selector": raw},
            ) from exc

    def matches(self, platform: Platform) -> bool:
        if self.value == "unix":
            return platform.is_unix
        if self.value in FAMILY_SELECTORS:
            return platform.family == self.value
        return platform.value == self.value

    @property
    def specificity(self) -> int:
        if self.value == "unix":
            return 1
        if self.value in FAMILY_SELECTORS:
            return 2
        return 3


@dataclass(frozen=True, slots=True)
class Target:
    """Raw per-phase dependency tables of one target group."""

    tables: Mapping[SpecType, Mapping[str, Any]] = field(default_factory=dict)

    def dependencies(self, spec_type: SpecType) -> Dependencies | None:
        table = self.tables.get(spec_type)
        if table is None:
            return None
        return Dependencies(
            (PackageName.parse(name), PixiSpec.from_toml(value, name=name))
            for name, value in table.items()
        )


@dataclass(frozen=True, slots=True)
class Targets:
    default: Target = field(default_factory=Target)
    specific: tuple[tuple[TargetSelector, Target], ...] = ()

    def resolve(self, platform: Platform | None) -> list[Target]:
        """Targets applying to *platform*, most specific first."""
        if platform is None:
            return [self.default]
        matching = [
            (selector.specificity, index, target)
            for index, (selector, target) in enumerate(self.specific)
            if selector.matches(platform)
        ]
        matching.sort(key=lambda item: (-item[0], item[1]))
        return [target for _, _, target in matching] + [self.default]


@dataclass(frozen=True, slots=True)
class BackendDeclaration:
    name: str
    version: str | None = None
    configuration: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PackageSection:
    name: str | None
    version: str | None
    targets: Targets = field(default_factory=Targets)
    backend: BackendDeclaration | None = None
    license: str | None = None
    license_family: str | None = None
    summary: str | None = None
    homepage: str | None = None


@dataclass(frozen=True, slots=True)
class WorkspaceSection:
    name: str | None = None
    channels: tuple[str, ...] = ()
    platforms: tuple[Platform, ...] = ()


@dataclass(frozen=True, slots=True)
class PackageIdentity:
    name: PackageName
    version: str


@dataclass(frozen=True, slots=True)
class Manifest:
    path: Path
    workspace: WorkspaceSection
    package: PackageSection | None = None

    @classmethod
    def from_path(cls, path: str | Path) -> Manifest:
        manifest_path = Path(path)
        if manifest_path.is_dir():
            manifest_path = manifest_path / "pixi.toml"
        try:
            raw = manifest_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ManifestLoadError(
                f"failed to read manifest from {manifest_path}",
                hint="Check that the manifest path exists and is readable.",
                context={"path": str(manifest_path)},
            ) from exc
        except UnicodeDecodeError as exc:
            raise ManifestLoadError(
                f"manifest {manifest_path} is not valid UTF-8",
                hint="Save the manifest with UTF-8 encoding.",
                context={"path": str(manifest_path)},
            ) from exc
        return cls.from_str(manifest_path, raw)

    @classmethod
    def from_str(cls, path: str | Path, raw: str) -> Manifest:
        manifest_path = Path(path).absolute()
        try:
            payload = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestLoadError(
                f"failed to parse manifest from {manifest_path}",
                hint=str(exc),
                context={"path": str(manifest_path)},
            ) from exc

        workspace_raw = payload.get("workspace", payload.get("project", {}))
        workspace = _parse_workspace(_table(workspace_raw, "workspace"))
        package_raw = payload.get("package")
        package = None if package_raw is None else _parse_package(_table(package_raw, "package"))
        return cls(path=manifest_path, workspace=workspace, package=package)

    @property
    def manifest_root(self) -> Path:
        return self.path.parent

    def package_section(self) -> PackageSection:
        if self.package is None:
            raise MissingPackageSection(
                f"manifest {self.path} does not contain a [package] section",
                hint="Add a [package] table with `name` and `version`.",
                context={"path": str(self.path)},
            )
        return self.package

    def identity(self) -> PackageIdentity:
        package = self.package_section()
        if not package.name:
            raise MissingNameField(
                "a 'name' field is required in the [package] section",
                context={"path": str(self.path)},
            )
        if not package.version:
            raise MissingVersionField(
                "a 'version' field is required in the [package] section",
                context={"path": str(self.path)},
            )
        return PackageIdentity(name=PackageName.parse(package.name), version=package.version)

    def dependencies(self, spec_type: SpecType, platform: Platform | None) -> Dependencies:
        package = self.package_section()
        groups = (
            target.dependencies(spec_type) for target in package.targets.resolve(platform)
        )
        return Dependencies.merged(group for group in groups if group is not None)

    def supports_target_platform(self, platform: Platform) -> bool:
        if not self.workspace.platforms or platform is Platform.NOARCH:
            return True
        return platform in self.workspace.platforms

    def resolved_workspace_channels(self, channel_config: ChannelConfig) -> tuple[str, ...]:
        return resolve_channels(self.workspace.channels, channel_config)


def _parse_workspace(payload: Mapping[str, Any]) -> WorkspaceSection:
    platforms: list[Platform] = []
    for raw in _optional_str_list(payload, "platforms", section="workspace"):
        try:
            platforms.append(Platform(raw))
        except ValueError as exc:
            raise ManifestLoadError(
                f"Unknown platform '{raw}' in workspace platforms.",
                context={"platform": raw},
            ) from exc
    return WorkspaceSection(
        name=_optional_str(payload, "name", section="workspace"),
        channels=tuple(_channel_entries(payload)),
        platforms=tuple(platforms),
    )


def _channel_entries(payload: Mapping[str, Any]) -> list[str]:
    raw = payload.get("channels", [])
    if not isinstance(raw, list):
        raise ManifestLoadError("Invalid manifest `workspace.channels` value.")
    channels: list[str] = []
    for item in raw:
        # Channels may be written as `{ channel = "...", priority = N }`.
        if isinstance(item, Mapping):
            item = item.get("channel")
        if not isinstance(item, str):
            raise ManifestLoadError("Invalid entry in `workspace.channels`.")
        channels.append(item)
    return channels


def _parse_package(payload: Mapping[str, Any]) -> PackageSection:
    default_tables = _dependency_tables(payload, section="package")
    specific: list[tuple[TargetSelector, Target]] = []
    for selector, target_raw in _table(payload.get("target", {}), "package.target").items():
        section = f"package.target.{selector}"
        specific.append(
            (
                TargetSelector.parse(selector),
                Target(_dependency_tables(_table(target_raw, section), section=section)),
            )
        )

    backend: BackendDeclaration | None = None
    build_raw = payload.get("build")
    if build_raw is not None:
        build = _table(build_raw, "package.build")
        backend_raw = _table(build.get("backend", {}), "package.build.backend")
        backend = BackendDeclaration(
            name=_optional_str(backend_raw, "name", section="package.build.backend") or "",
            version=_optional_str(backend_raw, "version", section="package.build.backend"),
            configuration=dict(
                _table(build.get("configuration", {}), "package.build.configuration")
            ),
        )

    return PackageSection(
        name=_optional_str(payload, "name", section="package"),
        version=_optional_str(payload, "version", section="package"),
        targets=Targets(default=Target(default_tables), specific=tuple(specific)),
        backend=backend,
        license=_optional_str(payload, "license", section="package"),
        license_family=_optional_str(payload, "license-family", section="package"),
        summary=_optional_str(payload, "description", section="package"),
        homepage=_optional_str(payload, "homepage", section="package"),
    )


def _dependency_tables(payload: Mapping[str, Any], *, section: str) -> dict[SpecType, Any]:
    tables: dict[SpecType, Any] = {}
    for spec_type in SpecType:
        raw = payload.get(spec_type.table_key)
        if raw is not None:
            tables[spec_type] = _table(raw, f"{section}.{spec_type.table_key}")
    return tables


def _table(value: Any, section: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ManifestLoadError(f"Invalid manifest `{section}` value; expected a table.")
    return value


def _optional_str(payload: Mapping[str, Any], key: str, *, section: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ManifestLoadError(f"Invalid manifest `{section}.{key}` value.")
    return value


def _optional_str_list(payload: Mapping[str, Any], key: str, *, section: str) -> list[str]:
    value = payload.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ManifestLoadError(f"Invalid manifest `{section}.{key}` value.")
    return list(value)


__all__ = [
    "BackendDeclaration",
    "Dependencies",
    "Manifest",
    "PackageIdentity",
    "PackageSection",
    "SpecType",
    "Target",
    "TargetSelector",
    "Targets",
    "WorkspaceSection",
]
