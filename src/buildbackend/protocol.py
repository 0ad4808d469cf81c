"""Stateful request/response protocol exposed to build frontends."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar

from buildbackend.backend import BuildBackend
from buildbackend.errors import (
    BuildBackendError,
    ProtocolStateError,
    UnknownMethodError,
    tagged,
)
from buildbackend.manifest import Manifest
from buildbackend.observability import StructuredLogger
from buildbackend.orchestrator import BuildOrchestrator
from buildbackend.platforms import (
    HostPlatformDetector,
    Platform,
    PlatformAndVirtualPackages,
    PlatformDetector,
)
from buildbackend.policies import BackendPolicy
from buildbackend.procedures import (
    CONDA_BUILD,
    CONDA_GET_METADATA,
    INITIALIZE,
    NEGOTIATE_CAPABILITIES,
    BackendCapabilities,
    CondaBuildParams,
    CondaBuildResult,
    CondaBuiltPackage,
    CondaMetadataParams,
    CondaMetadataResult,
    CondaPackageMetadata,
    InitializeParams,
    InitializeResult,
    NegotiateCapabilitiesParams,
    NegotiateCapabilitiesResult,
)

R = TypeVar("R")


class ProtocolState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    READY = "ready"


@dataclass(slots=True)
class BackendProtocol:
    """One backend session.

    ``initialize`` loads the manifest and binds the backend policy; the
    metadata and build procedures are only accepted once that has completed.
    Capability negotiation is accepted in any state.
    """

    policy: BackendPolicy | None = None
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    detector: PlatformDetector = field(default_factory=HostPlatformDetector)
    orchestrator: BuildOrchestrator = field(default_factory=BuildOrchestrator)
    state: ProtocolState = ProtocolState.UNINITIALIZED
    manifest: Manifest | None = None
    backend: BuildBackend | None = None

    async def initialize(self, params: InitializeParams) -> InitializeResult:
        return await self._logged(INITIALIZE, lambda: self._initialize(params))

    async def negotiate_capabilities(
        self, params: NegotiateCapabilitiesParams
    ) -> NegotiateCapabilitiesResult:
        return NegotiateCapabilitiesResult(capabilities=BackendCapabilities.static())

    async def get_conda_metadata(self, params: CondaMetadataParams) -> CondaMetadataResult:
        return await self._logged(CONDA_GET_METADATA, lambda: self._get_conda_metadata(params))

    async def build_conda(self, params: CondaBuildParams) -> CondaBuildResult:
        return await self._logged(CONDA_BUILD, lambda: self._build_conda(params))

    async def dispatch(self, method: str, params: Mapping[str, Any] | None) -> dict[str, Any]:
        """Route a structured request by method name and return a response object."""
        routes: dict[str, tuple[Callable[[Any], Any], Callable[[Any], Awaitable[Any]]]] = {
            INITIALIZE: (InitializeParams.from_dict, self.initialize),
            NEGOTIATE_CAPABILITIES: (
                NegotiateCapabilitiesParams.from_dict,
                self.negotiate_capabilities,
            ),
            CONDA_GET_METADATA: (CondaMetadataParams.from_dict, self.get_conda_metadata),
            CONDA_BUILD: (CondaBuildParams.from_dict, self.build_conda),
        }
        route = routes.get(method)
        if route is None:
            error = UnknownMethodError(
                f"Unknown method '{method}'.",
                hint=f"Supported methods: {', '.join(routes)}.",
                context={"procedure": method},
            )
            return self._error_response(error, method)

        parse, handler = route
        try:
            request = parse(params)
        except BuildBackendError as exc:
            return self._error_response(exc.with_context(procedure=method), method)

        try:
            result = await handler(request)
        except BuildBackendError as exc:
            return {"error": exc.to_dict()}
        return {"result": result.to_dict()}

    async def _initialize(self, params: InitializeParams) -> InitializeResult:
        if self.state is not ProtocolState.UNINITIALIZED:
            raise ProtocolStateError(
                "The backend is already initialized or being initialized.",
                context={"state": self.state.value},
            )

        # Concurrent initialize calls see INITIALIZING and are rejected above.
        self.state = ProtocolState.INITIALIZING
        try:
            manifest = await asyncio.to_thread(Manifest.from_path, params.manifest_path)
            self.manifest = manifest
            self.state = ProtocolState.INITIALIZED
            self.logger.log(
                operation="manifest_load",
                message=f"loaded manifest {manifest.path}",
                procedure=INITIALIZE,
                package=manifest.package.name if manifest.package is not None else None,
            )
            backend = BuildBackend.from_manifest(
                manifest,
                policy=self.policy,
                logger=self.logger,
                cache_dir=params.cache_directory,
                detector=self.detector,
            )
            self.backend = backend
            self.state = ProtocolState.READY
        finally:
            if self.state is not ProtocolState.READY:
                self.manifest = None
                self.state = ProtocolState.UNINITIALIZED

        capabilities = None if params.capabilities is None else backend.capabilities()
        return InitializeResult(capabilities=capabilities)

    async def _get_conda_metadata(self, params: CondaMetadataParams) -> CondaMetadataResult:
        backend = self._require_ready(CONDA_GET_METADATA)
        channel_config = backend.channel_config(params.channel_configuration.base_url)
        with tagged(procedure=CONDA_GET_METADATA, phase="configuration"):
            channels = backend.channels(channel_config, params.channel_base_urls)
        build, host = await backend.resolve_platforms(
            params.build_platform, params.host_platform, procedure=CONDA_GET_METADATA
        )
        with tagged(procedure=CONDA_GET_METADATA, phase="configuration"):
            backend.check_platform(host.platform)

        recipe = backend.recipe(
            channel_config, host.platform, build.platform, procedure=CONDA_GET_METADATA
        )
        configuration = await backend.build_configuration(
            recipe, channels, build, host, params.work_directory, procedure=CONDA_GET_METADATA
        )
        solved = await self.orchestrator.metadata(
            backend.output(recipe, configuration),
            backend.tool_configuration(channel_config),
            procedure=CONDA_GET_METADATA,
        )

        with tagged(procedure=CONDA_GET_METADATA, phase="solve"):
            run = solved.resolved_dependencies().run
            build_string = solved.build_string()
        package = CondaPackageMetadata(
            name=solved.name,
            version=solved.version,
            build=build_string,
            build_number=solved.recipe.build.number,
            subdir=configuration.subdir,
            depends=tuple(str(dep) for dep in run.depends),
            constraints=tuple(str(dep) for dep in run.constraints),
            license=solved.recipe.about.license,
            license_family=solved.recipe.about.license_family,
            noarch=solved.recipe.build.noarch.to_wire(),
        )
        return CondaMetadataResult(packages=(package,), input_globs=None)

    async def _build_conda(self, params: CondaBuildParams) -> CondaBuildResult:
        backend = self._require_ready(CONDA_BUILD)
        channel_config = backend.channel_config(params.channel_configuration.base_url)
        with tagged(procedure=CONDA_BUILD, phase="configuration"):
            channels = backend.channels(channel_config, params.channel_base_urls)
            build_platform = (
                None
                if params.build_platform_virtual_packages is None
                else PlatformAndVirtualPackages(
                    platform=Platform.current(),
                    virtual_packages=params.build_platform_virtual_packages,
                )
            )
        build, host = await backend.resolve_platforms(
            build_platform, params.host_platform, procedure=CONDA_BUILD
        )
        with tagged(procedure=CONDA_BUILD, phase="configuration"):
            backend.check_platform(host.platform)

        recipe = backend.recipe(channel_config, host.platform, build.platform, procedure=CONDA_BUILD)
        configuration = await backend.build_configuration(
            recipe, channels, build, host, params.work_directory, procedure=CONDA_BUILD
        )
        built, path = await self.orchestrator.build(
            backend.output(recipe, configuration),
            backend.tool_configuration(channel_config),
            procedure=CONDA_BUILD,
        )

        package = CondaBuiltPackage(
            output_file=path,
            input_globs=backend.input_globs(),
            name=built.name,
            version=built.version,
            build=built.build_string(),
            subdir=configuration.subdir,
        )
        return CondaBuildResult(packages=(package,))

    def _require_ready(self, procedure: str) -> BuildBackend:
        if self.state is not ProtocolState.READY or self.backend is None:
            raise ProtocolStateError(
                f"'{procedure}' was called before 'initialize' completed.",
                hint="Send an initialize request first.",
                context={"procedure": procedure, "state": self.state.value},
            )
        return self.backend

    async def _logged(self, procedure: str, call: Callable[[], Awaitable[R]]) -> R:
        try:
            return await call()
        except BuildBackendError as exc:
            exc.with_context(procedure=procedure)
            self._log_error(exc, procedure)
            raise

    def _error_response(self, error: BuildBackendError, procedure: str) -> dict[str, Any]:
        self._log_error(error, procedure)
        return {"error": error.to_dict()}

    def _log_error(self, error: BuildBackendError, procedure: str) -> None:
        self.logger.log(
            level="error",
            operation="error",
            message=error.message,
            procedure=procedure,
            phase=error.context.get("phase"),
            package=self.backend.package_name if self.backend is not None else None,
            backend=self.backend.policy.name if self.backend is not None else None,
            extra={"code": error.code, "kind": type(error).__name__},
        )


__all__ = [
    "BackendProtocol",
    "ProtocolState",
]
