"""Protocol implemented by every backend kind."""

from __future__ import annotations

from typing import Protocol

from buildbackend.config import BackendConfig
from buildbackend.manifest import Manifest
from buildbackend.platforms import Platform
from buildbackend.recipe import NoArchType
from buildbackend.requirements import PhaseDependencies, ToolInjection
from buildbackend.specs import MatchSpec


class BackendPolicy(Protocol):
    name: str
    keep_build: bool

    def noarch(self, config: BackendConfig) -> NoArchType:
        """Return the architecture classification of packages built by this kind."""

    def target_platform(self, host_platform: Platform, config: BackendConfig) -> Platform:
        """Return the subdir the produced package is published under."""

    def injection(self, dependencies: PhaseDependencies) -> ToolInjection:
        """Return the implicit tools this kind needs and the phase they go in."""

    def compilers(
        self,
        manifest: Manifest,
        config: BackendConfig,
        target_platform: Platform,
    ) -> tuple[MatchSpec, ...]:
        """Return compiler specs appended to the build phase."""

    def build_script(
        self,
        manifest: Manifest,
        dependencies: PhaseDependencies,
        config: BackendConfig,
        build_platform: Platform,
    ) -> tuple[str, ...]:
        """Render the build commands for *build_platform*."""

    def input_globs(self, config: BackendConfig) -> tuple[str, ...]:
        """Return globs of source files that invalidate a cached build."""
