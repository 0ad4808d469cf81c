"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import pytest

from buildbackend.config import ToolConfiguration
from buildbackend.engines import InProcessEngine
from buildbackend.hashing import HashInfo
from buildbackend.metadata import (
    ArchiveType,
    BuildConfiguration,
    Directories,
    Output,
    PackagingSettings,
)
from buildbackend.platforms import (
    Platform,
    PlatformWithVirtualPackages,
    VirtualPackage,
    VirtualPackageOverrides,
)
from buildbackend.recipe import Build, NoArchType, Package, PathSource, Recipe
from buildbackend.requirements import Requirements
from buildbackend.solver import InProcessSolver
from buildbackend.specs import MatchSpec, PackageName

PYTHON_MANIFEST = """\
[workspace]
name = "demo"
channels = ["conda-forge"]
platforms = ["linux-64", "osx-arm64", "win-64"]

[package]
name = "demo-pkg"
version = "1.2.3"
license = "MIT"

[package.build.backend]
name = "pixi-build-python"
version = "*"

[package.run-dependencies]
foobar = "3.2.1"
"""

CMAKE_MANIFEST = """\
[workspace]
name = "demo"
channels = ["conda-forge"]
platforms = ["linux-64", "osx-arm64"]

[package]
name = "sdl-example"
version = "0.1.0"

[package.build.backend]
name = "pixi-build-cmake"
version = "*"

[package.host-dependencies]
sdl2 = ">=2.26.5,<3.0"
"""

FIXED_TIMESTAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def write_manifest(tmp_path: Path) -> Callable[..., Path]:
    """Write a manifest into a fresh project directory and return its path."""

    def _write(body: str, directory: str = "project") -> Path:
        root = tmp_path / directory
        root.mkdir(parents=True, exist_ok=True)
        path = root / "pixi.toml"
        path.write_text(body, encoding="utf-8")
        return path

    return _write


@dataclass
class CountingDetector:
    platform: Platform = Platform.LINUX_64
    calls: int = 0

    def detect(self, overrides: VirtualPackageOverrides) -> PlatformWithVirtualPackages:
        self.calls += 1
        return PlatformWithVirtualPackages(
            platform=self.platform,
            virtual_packages=(VirtualPackage("__unix"), VirtualPackage("__glibc", "2.28")),
        )


@dataclass
class RecordingSolver:
    events: list[str]
    name: str = "recording"
    seen: list[Output] = field(default_factory=list)

    async def resolve(self, output: Output, tool_config: ToolConfiguration) -> Output:
        self.events.append("solve")
        self.seen.append(output)
        return await InProcessSolver().resolve(output, tool_config)


@dataclass
class RecordingEngine:
    events: list[str]
    name: str = "recording"
    seen: list[Output] = field(default_factory=list)

    async def run(self, output: Output, tool_config: ToolConfiguration) -> tuple[Output, Path]:
        self.events.append("build")
        self.seen.append(output)
        return await InProcessEngine().run(output, tool_config)


@pytest.fixture
def detector() -> CountingDetector:
    return CountingDetector()


@pytest.fixture
def events() -> list[str]:
    return []


@pytest.fixture
def recording_solver(events: list[str]) -> RecordingSolver:
    return RecordingSolver(events)


@pytest.fixture
def recording_engine(events: list[str]) -> RecordingEngine:
    return RecordingEngine(events)


@pytest.fixture
def make_output(tmp_path: Path) -> Callable[..., Output]:
    """Build an unsolved output rooted in ``tmp_path`` without going through a manifest."""

    def _make(
        *,
        script: tuple[str, ...] = (),
        archive_type: ArchiveType = ArchiveType.CONDA,
        noarch: NoArchType = NoArchType.NONE,
        platform: Platform = Platform.LINUX_64,
    ) -> Output:
        source = tmp_path / "src"
        source.mkdir(parents=True, exist_ok=True)
        recipe = Recipe(
            package=Package(name=PackageName.parse("demo-pkg"), version="1.2.3"),
            source=(PathSource(path=source),),
            build=Build(number=0, script=script, noarch=noarch),
            requirements=Requirements(
                host=(MatchSpec.parse("python"),),
                run=(MatchSpec.parse("foobar 3.2.1"),),
            ),
        )
        target = Platform.NOARCH if noarch.is_python else platform
        directories = Directories.setup(
            "demo-pkg",
            source / "pixi.toml",
            tmp_path / "out",
            timestamp=FIXED_TIMESTAMP,
            no_build_id=True,
            target_platform=target,
        )
        directories.create()
        host = PlatformWithVirtualPackages(platform=platform)
        configuration = BuildConfiguration(
            target_platform=target,
            host_platform=host,
            build_platform=host,
            hash=HashInfo.from_variant({}, noarch),
            directories=directories,
            channels=("https://conda.anaconda.org/conda-forge/",),
            timestamp=FIXED_TIMESTAMP,
            packaging_settings=PackagingSettings.from_args(archive_type),
        )
        return Output(recipe=recipe, build_configuration=configuration)

    return _make


@pytest.fixture
def python_manifest(write_manifest: Callable[..., Path]) -> Path:
    return write_manifest(PYTHON_MANIFEST)


@pytest.fixture
def cmake_manifest(write_manifest: Callable[..., Path]) -> Path:
    return write_manifest(CMAKE_MANIFEST, "cmake")
