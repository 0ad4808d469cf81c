"""Build configuration, directory layout, and the progressively resolved output."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any

from buildbackend.errors import DirectoryCreationFailed
from buildbackend.hashing import HashInfo, resolve_build_string
from buildbackend.platforms import Platform, PlatformWithVirtualPackages
from buildbackend.recipe import Recipe
from buildbackend.specs import MatchSpec

BUILD_DIR_PREFIX = "buildbackend_"
HOST_PREFIX_NAME_LIMIT = 80


def _host_prefix_name(platform: Platform) -> str:
    # Long placeholder so relocatable binaries have room to be patched.
    if platform.is_windows:
        return "host_env"
    return ("host_env" + "_placehold" * 8)[:HOST_PREFIX_NAME_LIMIT]


@dataclass(frozen=True, slots=True)
class Directories:
    """On-disk layout of one build invocation."""

    recipe_dir: Path
    output_dir: Path
    build_dir: Path
    work_dir: Path
    build_prefix: Path
    host_prefix: Path
    cache_dir: Path

    @classmethod
    def setup(
        cls,
        name: str,
        recipe_path: Path,
        output_dir: Path,
        *,
        timestamp: datetime,
        no_build_id: bool = False,
        target_platform: Platform = Platform.NOARCH,
    ) -> Directories:
        """Compute the layout without touching the filesystem."""
        output_dir = Path(output_dir).absolute()
        dirname = f"{BUILD_DIR_PREFIX}{name}"
        if not no_build_id:
            dirname = f"{dirname}_{int(timestamp.timestamp() * 1000)}"
        build_dir = output_dir / "bld" / dirname
        return cls(
            recipe_dir=Path(recipe_path).parent,
            output_dir=output_dir,
            build_dir=build_dir,
            work_dir=build_dir / "work",
            build_prefix=build_dir / "build_env",
            host_prefix=build_dir / _host_prefix_name(target_platform),
            cache_dir=output_dir / "build_cache",
        )

    def create(self) -> None:
        """Create the layout; existing directories are left as they are."""
        for path in (self.output_dir, self.build_dir, self.work_dir, self.cache_dir):
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise DirectoryCreationFailed(
                    f"failed to create directory {path}",
                    hint="Check that the work directory is writable.",
                    context={"path": str(path)},
                ) from exc

    async def create_async(self) -> None:
        await asyncio.to_thread(self.create)


class ArchiveType(StrEnum):
    CONDA = "conda"
    TAR_BZ2 = "tar.bz2"

    @property
    def extension(self) -> str:
        return f".{self.value}"


class CompressionLevel(StrEnum):
    DEFAULT = "default"
    HIGHEST = "highest"
    LOWEST = "lowest"

    def to_numeric(self, archive_type: ArchiveType) -> int:
        if archive_type is ArchiveType.CONDA:
            levels = {"default": 15, "highest": 22, "lowest": -7}
        else:
            levels = {"default": 9, "highest": 9, "lowest": 1}
        return levels[self.value]


@dataclass(frozen=True, slots=True)
class PackagingSettings:
    archive_type: ArchiveType = ArchiveType.CONDA
    compression_level: int = 15

    @classmethod
    def from_args(
        cls,
        archive_type: ArchiveType = ArchiveType.CONDA,
        compression_level: CompressionLevel = CompressionLevel.DEFAULT,
    ) -> PackagingSettings:
        return cls(
            archive_type=archive_type,
            compression_level=compression_level.to_numeric(archive_type),
        )


@dataclass(frozen=True, slots=True)
class BuildConfiguration:
    target_platform: Platform
    host_platform: PlatformWithVirtualPackages
    build_platform: PlatformWithVirtualPackages
    hash: HashInfo
    directories: Directories
    channels: tuple[str, ...]
    timestamp: datetime
    packaging_settings: PackagingSettings = field(default_factory=PackagingSettings)
    variant: Mapping[str, str] = field(default_factory=dict)

    @property
    def subdir(self) -> str:
        return self.target_platform.value

    def to_payload(self) -> dict[str, Any]:
        return {
            "target_platform": self.target_platform.value,
            "host_platform": self.host_platform.platform.value,
            "build_platform": self.build_platform.platform.value,
            "hash": str(self.hash),
            "variant": dict(sorted(self.variant.items())),
            "channels": list(self.channels),
            "build_dir": str(self.directories.build_dir),
            "archive_type": self.packaging_settings.archive_type.value,
            "compression_level": self.packaging_settings.compression_level,
            "timestamp": self.timestamp.isoformat(),
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class DependencyInfo:
    """A requirement together with where it came from (``source``, ``compiler``, ``run_export``)."""

    spec: MatchSpec
    origin: str = "source"

    def __str__(self) -> str:
        return str(self.spec)


@dataclass(frozen=True, slots=True)
class ResolvedPackage:
    name: str
    version: str
    build: str
    subdir: str
    channel: str | None = None


@dataclass(frozen=True, slots=True)
class ResolvedDependencies:
    specs: tuple[DependencyInfo, ...] = ()
    resolved: tuple[ResolvedPackage, ...] = ()


@dataclass(frozen=True, slots=True)
class RunDependencies:
    depends: tuple[DependencyInfo, ...] = ()
    constraints: tuple[DependencyInfo, ...] = ()


@dataclass(frozen=True, slots=True)
class FinalizedDependencies:
    run: RunDependencies
    build: ResolvedDependencies | None = None
    host: ResolvedDependencies | None = None


@dataclass(frozen=True, slots=True)
class Output:
    """Recipe plus configuration; resolution fields are filled in by later steps."""

    recipe: Recipe
    build_configuration: BuildConfiguration
    finalized_dependencies: FinalizedDependencies | None = None
    build_summary: Mapping[str, Any] = field(default_factory=dict)
    system_tools: Mapping[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return str(self.recipe.name)

    @property
    def version(self) -> str:
        return self.recipe.version

    @property
    def target_platform(self) -> Platform:
        return self.build_configuration.target_platform

    def resolved_dependencies(self) -> FinalizedDependencies:
        if self.finalized_dependencies is None:
            raise AssertionError(
                f"dependencies of {self.name} were read before the solver ran"
            )
        return self.finalized_dependencies

    def with_finalized_dependencies(self, dependencies: FinalizedDependencies) -> Output:
        return dataclasses.replace(self, finalized_dependencies=dependencies)

    def with_recipe(self, recipe: Recipe) -> Output:
        return dataclasses.replace(self, recipe=recipe)

    def with_build_summary(self, **values: Any) -> Output:
        return dataclasses.replace(self, build_summary={**self.build_summary, **values})

    def build_string(self) -> str:
        return resolve_build_string(
            self.recipe.build, self.build_configuration.hash, self.recipe.context
        )

    def with_resolved_build_string(self) -> Output:
        return self.with_recipe(self.recipe.with_build_string(self.build_string()))

    def identifier(self) -> str:
        return f"{self.name}-{self.version}-{self.build_string()}"


__all__ = [
    "ArchiveType",
    "BuildConfiguration",
    "CompressionLevel",
    "DependencyInfo",
    "Directories",
    "FinalizedDependencies",
    "Output",
    "PackagingSettings",
    "ResolvedDependencies",
    "ResolvedPackage",
    "RunDependencies",
    "utc_now",
]
