"""Policy for pure Python packages installed with pip or uv."""

from __future__ import annotations

from dataclasses import dataclass

from buildbackend.build_script import BuildPlatform, Installer, PythonScriptContext
from buildbackend.config import BackendConfig
from buildbackend.manifest import Manifest, SpecType
from buildbackend.platforms import Platform
from buildbackend.recipe import NoArchType
from buildbackend.requirements import PhaseDependencies, ToolInjection
from buildbackend.specs import MatchSpec

INPUT_GLOBS: tuple[str, ...] = (
    # Source files
    "**/*.py",
    "**/*.pyx",
    "**/*.c",
    "**/*.cpp",
    "**/*.sh",
    # Data files
    "**/*.json",
    "**/*.yaml",
    "**/*.yml",
    "**/*.txt",
    # Project configuration
    "setup.py",
    "setup.cfg",
    "pyproject.toml",
    "requirements*.txt",
    "Pipfile",
    "Pipfile.lock",
    "poetry.lock",
    "tox.ini",
    # Build configuration
    "Makefile",
    "MANIFEST.in",
    "tests/**/*.py",
    "docs/**/*.rst",
    "docs/**/*.md",
    # Versioning
    "VERSION",
    "version.py",
)


@dataclass(frozen=True, slots=True)
class PythonPolicy:
    name: str = "pixi-build-python"
    keep_build: bool = False

    def noarch(self, config: BackendConfig) -> NoArchType:
        if config.noarch is False:
            return NoArchType.NONE
        return NoArchType.PYTHON

    def target_platform(self, host_platform: Platform, config: BackendConfig) -> Platform:
        if self.noarch(config).is_python:
            return Platform.NOARCH
        return host_platform

    def injection(self, dependencies: PhaseDependencies) -> ToolInjection:
        installer = Installer.detect(dependencies)
        return ToolInjection(
            phase=SpecType.HOST,
            tools=(installer.package_name, "python"),
            copy_from_run=True,
        )

    def compilers(
        self,
        manifest: Manifest,
        config: BackendConfig,
        target_platform: Platform,
    ) -> tuple[MatchSpec, ...]:
        return ()

    def build_script(
        self,
        manifest: Manifest,
        dependencies: PhaseDependencies,
        config: BackendConfig,
        build_platform: Platform,
    ) -> tuple[str, ...]:
        return PythonScriptContext(
            installer=Installer.detect(dependencies),
            build_platform=BuildPlatform.from_platform(build_platform),
            extra_args=config.extra_args,
            env=config.env,
        ).render()

    def input_globs(self, config: BackendConfig) -> tuple[str, ...]:
        return INPUT_GLOBS
