"""Kind-agnostic recipe and build configuration assembly."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from buildbackend.channels import DEFAULT_CHANNEL_ALIAS, ChannelConfig, resolve_channels
from buildbackend.config import BackendConfig, ToolConfiguration
from buildbackend.errors import ManifestError, UnsupportedPlatform, tagged
from buildbackend.hashing import HashInfo
from buildbackend.manifest import Manifest
from buildbackend.metadata import BuildConfiguration, Directories, Output, utc_now
from buildbackend.observability import StructuredLogger
from buildbackend.platforms import (
    HostPlatformDetector,
    Platform,
    PlatformAndVirtualPackages,
    PlatformDetector,
    PlatformWithVirtualPackages,
    VirtualPackageOverrides,
)
from buildbackend.policies import BackendPolicy, get_policy
from buildbackend.procedures import BackendCapabilities
from buildbackend.recipe import About, Build, Package, PathSource, Recipe
from buildbackend.requirements import (
    PhaseDependencies,
    Requirements,
    extract_requirements,
    inject_tools,
    injected_names,
)


@dataclass(slots=True)
class BuildBackend:
    """Turns one manifest into recipes and build configurations.

    The manifest, policy and configuration are fixed for the lifetime of the
    instance; every call builds fresh values from them.
    """

    manifest: Manifest
    policy: BackendPolicy
    config: BackendConfig = field(default_factory=BackendConfig)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    cache_dir: Path | None = None
    detector: PlatformDetector = field(default_factory=HostPlatformDetector)

    @classmethod
    def from_manifest(
        cls,
        manifest: Manifest,
        *,
        policy: BackendPolicy | None = None,
        logger: StructuredLogger | None = None,
        cache_dir: Path | None = None,
        detector: PlatformDetector | None = None,
    ) -> BuildBackend:
        declared = manifest.package.backend if manifest.package is not None else None
        if policy is None:
            if declared is None or not declared.name:
                raise ManifestError(
                    "No build backend is declared for this package.",
                    hint=(
                        "Set `[package.build.backend] name` to "
                        "'pixi-build-python' or 'pixi-build-cmake'."
                    ),
                    context={"path": str(manifest.path)},
                )
            policy = get_policy(declared.name)
        config = BackendConfig.from_mapping(declared.configuration if declared else None)
        return cls(
            manifest=manifest,
            policy=policy,
            config=config,
            logger=logger or StructuredLogger(),
            cache_dir=cache_dir,
            detector=detector or HostPlatformDetector(),
        )

    @property
    def package_name(self) -> str | None:
        package = self.manifest.package
        return package.name if package is not None else None

    def capabilities(self) -> BackendCapabilities:
        return BackendCapabilities.static()

    def input_globs(self) -> tuple[str, ...]:
        return self.policy.input_globs(self.config)

    def channel_config(self, channel_alias: str | None = None) -> ChannelConfig:
        return ChannelConfig(
            root_dir=self.manifest.manifest_root,
            channel_alias=channel_alias or DEFAULT_CHANNEL_ALIAS,
        )

    def channels(
        self,
        channel_config: ChannelConfig,
        override: tuple[str, ...] | None = None,
    ) -> tuple[str, ...]:
        """Explicit channel URLs win over the channels declared in the manifest."""
        if override is not None:
            return resolve_channels(override, channel_config)
        return self.manifest.resolved_workspace_channels(channel_config)

    def tool_configuration(self, channel_config: ChannelConfig) -> ToolConfiguration:
        return ToolConfiguration(
            channel_config=channel_config,
            logger=self.logger,
            cache_dir=self.cache_dir,
            testing=False,
            keep_build=self.policy.keep_build,
        )

    def check_platform(self, host_platform: Platform) -> None:
        if not self.manifest.supports_target_platform(host_platform):
            allowed = ",".join(platform.value for platform in self.manifest.workspace.platforms)
            raise UnsupportedPlatform(
                f"The package does not support the platform '{host_platform}'.",
                hint="Add the platform to the workspace `platforms` list.",
                context={"platform": host_platform.value, "supported": allowed},
            )

    async def resolve_platforms(
        self,
        build_platform: PlatformAndVirtualPackages | None,
        host_platform: PlatformAndVirtualPackages | None,
        *,
        procedure: str | None = None,
    ) -> tuple[PlatformWithVirtualPackages, PlatformWithVirtualPackages]:
        """Return ``(build, host)``; unset slots share one detection result."""
        detected: PlatformWithVirtualPackages | None = None
        if build_platform is None or host_platform is None:
            with tagged(procedure=procedure, phase="configuration"):
                detected = await asyncio.to_thread(
                    self.detector.detect, VirtualPackageOverrides.from_env()
                )
            self._log(
                "platform_detect",
                f"detected platform {detected.platform}",
                procedure=procedure,
                phase="configuration",
                extra={"virtual_packages": [str(vp) for vp in detected.virtual_packages]},
            )
        build = build_platform.resolved() if build_platform is not None else detected
        host = host_platform.resolved() if host_platform is not None else detected
        return build, host

    def requirements(
        self,
        channel_config: ChannelConfig,
        host_platform: Platform,
        *,
        procedure: str | None = None,
    ) -> Requirements:
        with tagged(procedure=procedure, phase="requirements"):
            identity = self.manifest.identity()
            declared = PhaseDependencies.collect(self.manifest, host_platform)
            injected = inject_tools(declared, self.policy.injection(declared))
            target_platform = self.policy.target_platform(host_platform, self.config)
            compilers = self.policy.compilers(self.manifest, self.config, target_platform)
            requirements = extract_requirements(
                injected,
                channel_config,
                self_name=identity.name,
                extra_build=compilers,
            )

        self._log(
            "requirements",
            "resolved requirements",
            procedure=procedure,
            phase="requirements",
            extra={
                "injected": list(injected_names(declared, injected)),
                "compilers": [str(spec) for spec in compilers],
            },
        )
        return requirements

    def recipe(
        self,
        channel_config: ChannelConfig,
        host_platform: Platform,
        build_platform: Platform,
        *,
        procedure: str | None = None,
    ) -> Recipe:
        requirements = self.requirements(channel_config, host_platform, procedure=procedure)
        with tagged(procedure=procedure, phase="recipe"):
            identity = self.manifest.identity()
            package = self.manifest.package_section()
            declared = PhaseDependencies.collect(self.manifest, host_platform)
            script = self.policy.build_script(self.manifest, declared, self.config, build_platform)
            recipe = Recipe(
                package=Package(name=identity.name, version=identity.version),
                source=(PathSource(path=self.manifest.manifest_root),),
                build=Build(number=0, script=script, noarch=self.policy.noarch(self.config)),
                requirements=requirements,
                about=About(
                    license=package.license,
                    license_family=package.license_family,
                    summary=package.summary,
                    homepage=package.homepage,
                ),
            )
        self._log(
            "recipe",
            f"synthesized recipe {recipe.name} {recipe.version}",
            procedure=procedure,
            phase="recipe",
            extra={"digest": recipe.digest(), "noarch": recipe.build.noarch.value},
        )
        return recipe

    async def build_configuration(
        self,
        recipe: Recipe,
        channels: tuple[str, ...],
        build_platform: PlatformWithVirtualPackages,
        host_platform: PlatformWithVirtualPackages,
        work_directory: Path,
        *,
        procedure: str | None = None,
        timestamp: datetime | None = None,
    ) -> BuildConfiguration:
        with tagged(procedure=procedure, phase="configuration"):
            target_platform = self.policy.target_platform(host_platform.platform, self.config)
            timestamp = timestamp or utc_now()
            variant: dict[str, str] = {}
            directories = Directories.setup(
                str(recipe.name),
                self.manifest.path,
                work_directory,
                timestamp=timestamp,
                no_build_id=True,
                target_platform=target_platform,
            )
            await directories.create_async()

        self._log(
            "directories",
            f"prepared build directory {directories.build_dir}",
            procedure=procedure,
            phase="configuration",
        )
        return BuildConfiguration(
            target_platform=target_platform,
            host_platform=host_platform,
            build_platform=build_platform,
            hash=HashInfo.from_variant(variant, recipe.build.noarch),
            directories=directories,
            channels=channels,
            timestamp=timestamp,
            packaging_settings=self.config.packaging_settings(),
            variant=variant,
        )

    def output(self, recipe: Recipe, configuration: BuildConfiguration) -> Output:
        return Output(recipe=recipe, build_configuration=configuration)

    def _log(
        self,
        operation: str,
        message: str,
        *,
        procedure: str | None = None,
        phase: str | None = None,
        extra: dict[str, object] | None = None,
    ) -> None:
        self.logger.log(
            operation=operation,
            message=message,
            procedure=procedure,
            phase=phase,
            package=self.package_name,
            backend=self.policy.name,
            extra=extra,
        )


__all__ = ["BuildBackend"]
