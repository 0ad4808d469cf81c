import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from buildbackend.errors import (
    ChannelResolutionFailed,
    ManifestError,
    ManifestLoadError,
    MissingVersionField,
    ProtocolStateError,
    UnsupportedPlatform,
)
from buildbackend.hashing import HashInfo
from buildbackend.orchestrator import BuildOrchestrator
from buildbackend.platforms import Platform, PlatformAndVirtualPackages, VirtualPackage
from buildbackend.policies.python import INPUT_GLOBS
from buildbackend.procedures import (
    CondaBuildParams,
    CondaMetadataParams,
    FrontendCapabilities,
    InitializeParams,
    NegotiateCapabilitiesParams,
)
from buildbackend.protocol import BackendProtocol, ProtocolState
from buildbackend.recipe import NoArchType

LINUX = PlatformAndVirtualPackages(Platform.LINUX_64)


@pytest.fixture
def protocol(detector: Any, recording_solver: Any, recording_engine: Any) -> BackendProtocol:
    return BackendProtocol(
        detector=detector,
        orchestrator=BuildOrchestrator(solver=recording_solver, engine=recording_engine),
    )


async def _ready(protocol: BackendProtocol, manifest: Path) -> BackendProtocol:
    await protocol.initialize(InitializeParams(manifest_path=manifest))
    return protocol


@pytest.mark.asyncio
async def test_negotiate_capabilities_before_initialize(protocol: BackendProtocol) -> None:
    result = await protocol.negotiate_capabilities(NegotiateCapabilitiesParams())
    assert result.to_dict() == {
        "capabilities": {"providesCondaMetadata": True, "providesCondaBuild": True}
    }
    assert protocol.state is ProtocolState.UNINITIALIZED


@pytest.mark.asyncio
async def test_metadata_before_initialize_is_rejected(
    protocol: BackendProtocol, tmp_path: Path
) -> None:
    with pytest.raises(ProtocolStateError) as excinfo:
        await protocol.get_conda_metadata(CondaMetadataParams(work_directory=tmp_path))

    assert excinfo.value.context["procedure"] == "conda/getMetadata"
    errors = protocol.logger.errors()
    assert len(errors) == 1
    assert errors[0]["extra"]["code"] == "E_PROTOCOL"
    assert errors[0]["procedure"] == "conda/getMetadata"


@pytest.mark.asyncio
async def test_initialize_twice_is_rejected(
    protocol: BackendProtocol, python_manifest: Path
) -> None:
    await _ready(protocol, python_manifest)
    assert protocol.state is ProtocolState.READY

    with pytest.raises(ProtocolStateError):
        await protocol.initialize(InitializeParams(manifest_path=python_manifest))
    assert protocol.state is ProtocolState.READY


@pytest.mark.asyncio
async def test_concurrent_initialize_is_rejected(
    protocol: BackendProtocol, python_manifest: Path
) -> None:
    params = InitializeParams(manifest_path=python_manifest)
    first, second = await asyncio.gather(
        protocol.initialize(params), protocol.initialize(params), return_exceptions=True
    )

    assert not isinstance(first, BaseException)
    assert isinstance(second, ProtocolStateError)
    assert second.context["state"] == "initializing"
    assert protocol.state is ProtocolState.READY


@pytest.mark.asyncio
async def test_failed_initialize_can_be_retried(
    protocol: BackendProtocol, python_manifest: Path, tmp_path: Path
) -> None:
    with pytest.raises(ManifestLoadError):
        await protocol.initialize(InitializeParams(manifest_path=tmp_path / "missing.toml"))
    assert protocol.state is ProtocolState.UNINITIALIZED

    await protocol.initialize(InitializeParams(manifest_path=python_manifest))
    assert protocol.state is ProtocolState.READY


@pytest.mark.asyncio
async def test_initialize_without_backend_declaration(
    protocol: BackendProtocol, write_manifest: Callable[..., Path]
) -> None:
    path = write_manifest('[package]\nname = "demo"\nversion = "1"\n')
    with pytest.raises(ManifestError):
        await protocol.initialize(InitializeParams(manifest_path=path))
    assert protocol.state is ProtocolState.UNINITIALIZED
    assert protocol.manifest is None


@pytest.mark.asyncio
async def test_initialize_reports_capabilities_on_request(
    protocol: BackendProtocol, python_manifest: Path
) -> None:
    result = await protocol.initialize(
        InitializeParams(manifest_path=python_manifest, capabilities=FrontendCapabilities())
    )
    assert result.to_dict()["capabilities"]["providesCondaBuild"] is True
    assert protocol.logger.records_for(operation="manifest_load")


@pytest.mark.asyncio
async def test_python_package_metadata(
    protocol: BackendProtocol, python_manifest: Path, tmp_path: Path, events: list[str]
) -> None:
    await _ready(protocol, python_manifest)
    result = await protocol.get_conda_metadata(
        CondaMetadataParams(work_directory=tmp_path / "work", host_platform=LINUX)
    )

    (package,) = result.packages
    assert package.name == "demo-pkg"
    assert package.version == "1.2.3"
    assert package.build == f"{HashInfo.from_variant({}, NoArchType.PYTHON)}_0"
    assert package.build.startswith("pyh")
    assert package.build_number == 0
    assert package.subdir == "noarch"
    assert package.depends == ("foobar 3.2.1",)
    assert package.noarch == "python"
    assert package.license == "MIT"
    assert result.input_globs is None
    assert events == ["solve"]


@pytest.mark.asyncio
async def test_omitted_platforms_are_detected_once(
    protocol: BackendProtocol, python_manifest: Path, tmp_path: Path, detector: Any
) -> None:
    await _ready(protocol, python_manifest)
    await protocol.get_conda_metadata(CondaMetadataParams(work_directory=tmp_path / "work"))
    assert detector.calls == 1


@pytest.mark.asyncio
async def test_unsupported_platform_stops_before_any_work(
    protocol: BackendProtocol,
    write_manifest: Callable[..., Path],
    tmp_path: Path,
    events: list[str],
) -> None:
    path = write_manifest(
        '[workspace]\nchannels = ["conda-forge"]\nplatforms = ["osx-arm64"]\n'
        '[package]\nname = "demo"\nversion = "1"\n'
        '[package.build.backend]\nname = "pixi-build-cmake"\n'
    )
    await _ready(protocol, path)
    work = tmp_path / "work"

    with pytest.raises(UnsupportedPlatform) as excinfo:
        await protocol.build_conda(CondaBuildParams(work_directory=work))

    assert excinfo.value.context["platform"] == "linux-64"
    assert excinfo.value.context["phase"] == "configuration"
    assert excinfo.value.context["procedure"] == "conda/build"
    assert not work.exists()
    assert events == []


@pytest.mark.asyncio
async def test_build_solves_then_builds(
    protocol: BackendProtocol, python_manifest: Path, tmp_path: Path, events: list[str]
) -> None:
    await _ready(protocol, python_manifest)
    result = await protocol.build_conda(
        CondaBuildParams(work_directory=tmp_path / "work", host_platform=LINUX)
    )

    (package,) = result.packages
    assert events == ["solve", "build"]
    assert package.output_file.exists()
    assert package.output_file.parent.name == "noarch"
    assert package.input_globs == INPUT_GLOBS
    assert package.build == f"{HashInfo.from_variant({}, NoArchType.PYTHON)}_0"


@pytest.mark.asyncio
async def test_build_platform_virtual_packages_skip_build_detection(
    protocol: BackendProtocol,
    python_manifest: Path,
    tmp_path: Path,
    detector: Any,
    recording_solver: Any,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(Platform, "current", classmethod(lambda cls: Platform.OSX_ARM64))
    await _ready(protocol, python_manifest)
    await protocol.build_conda(
        CondaBuildParams(
            work_directory=tmp_path / "work",
            host_platform=LINUX,
            build_platform_virtual_packages=(VirtualPackage("__osx", "14.0"),),
        )
    )

    assert detector.calls == 0
    configuration = recording_solver.seen[0].build_configuration
    assert configuration.build_platform.platform is Platform.OSX_ARM64
    assert configuration.build_platform.virtual_packages == (VirtualPackage("__osx", "14.0"),)


@pytest.mark.asyncio
async def test_channel_failure_is_tagged(
    protocol: BackendProtocol, python_manifest: Path, tmp_path: Path
) -> None:
    await _ready(protocol, python_manifest)
    with pytest.raises(ChannelResolutionFailed) as excinfo:
        await protocol.get_conda_metadata(
            CondaMetadataParams(
                work_directory=tmp_path / "work",
                channel_base_urls=("ftp://example.com/channel",),
            )
        )
    assert excinfo.value.context["phase"] == "configuration"
    assert excinfo.value.context["procedure"] == "conda/getMetadata"


@pytest.mark.asyncio
async def test_channel_override_reaches_the_solver(
    protocol: BackendProtocol, python_manifest: Path, tmp_path: Path, recording_solver: Any
) -> None:
    await _ready(protocol, python_manifest)
    await protocol.get_conda_metadata(
        CondaMetadataParams(
            work_directory=tmp_path / "work",
            channel_base_urls=("https://example.com/channel",),
            host_platform=LINUX,
        )
    )
    seen = recording_solver.seen[0]
    assert seen.build_configuration.channels == ("https://example.com/channel/",)


@pytest.mark.asyncio
async def test_cmake_package_build(
    protocol: BackendProtocol, cmake_manifest: Path, tmp_path: Path, recording_solver: Any
) -> None:
    await _ready(protocol, cmake_manifest)
    result = await protocol.build_conda(
        CondaBuildParams(work_directory=tmp_path / "work", host_platform=LINUX)
    )

    (package,) = result.packages
    assert package.subdir == "linux-64"
    assert package.build == f"{HashInfo.from_variant({}, NoArchType.NONE)}_0"
    assert package.build.startswith("h")
    assert "**/CMakeLists.txt" in package.input_globs

    requirements = recording_solver.seen[0].recipe.requirements
    assert [str(spec) for spec in requirements.build] == ["cmake", "ninja", "gxx_linux-64"]
    assert [str(spec) for spec in requirements.host] == ["sdl2 >=2.26.5,<3.0"]


@pytest.mark.asyncio
async def test_missing_version_is_tagged_with_phase(
    protocol: BackendProtocol, write_manifest: Callable[..., Path], tmp_path: Path
) -> None:
    path = write_manifest(
        '[workspace]\nchannels = ["conda-forge"]\n'
        '[package]\nname = "demo"\n[package.build.backend]\nname = "pixi-build-python"\n'
    )
    await _ready(protocol, path)

    with pytest.raises(MissingVersionField) as excinfo:
        await protocol.get_conda_metadata(
            CondaMetadataParams(work_directory=tmp_path / "work", host_platform=LINUX)
        )
    assert excinfo.value.context["phase"] == "requirements"
    assert protocol.logger.errors()[0]["phase"] == "requirements"


@pytest.mark.asyncio
async def test_dispatch_round_trip(
    protocol: BackendProtocol, python_manifest: Path, tmp_path: Path
) -> None:
    assert await protocol.dispatch("initialize", {"manifestPath": str(python_manifest)}) == {
        "result": {}
    }

    response = await protocol.dispatch(
        "conda/getMetadata",
        {
            "workDirectory": str(tmp_path / "work"),
            "hostPlatform": {"platform": "linux-64", "virtualPackages": ["__glibc=2.28"]},
        },
    )
    package = response["result"]["packages"][0]
    assert package["buildNumber"] == 0
    assert package["subdir"] == "noarch"
    assert package["licenseFamily"] is None
    assert response["result"]["inputGlobs"] is None


@pytest.mark.asyncio
async def test_dispatch_unknown_method(protocol: BackendProtocol) -> None:
    response = await protocol.dispatch("conda/publish", {})
    assert response["error"]["code"] == "E_PROTOCOL"
    assert response["error"]["kind"] == "UnknownMethodError"
    assert protocol.logger.errors()[0]["procedure"] == "conda/publish"


@pytest.mark.asyncio
async def test_dispatch_invalid_request(protocol: BackendProtocol, python_manifest: Path) -> None:
    await _ready(protocol, python_manifest)
    response = await protocol.dispatch("conda/build", {"hostPlatform": "linux-64"})
    assert response["error"]["kind"] == "InvalidRequestError"
    assert response["error"]["context"]["procedure"] == "conda/build"


@pytest.mark.asyncio
async def test_dispatch_handler_error(protocol: BackendProtocol, tmp_path: Path) -> None:
    response = await protocol.dispatch(
        "conda/build", {"workDirectory": str(tmp_path / "work")}
    )
    assert response["error"]["code"] == "E_PROTOCOL"
    assert response["error"]["kind"] == "ProtocolStateError"


@pytest.mark.asyncio
async def test_dispatch_non_utf8_manifest(
    protocol: BackendProtocol, python_manifest: Path
) -> None:
    python_manifest.write_bytes(python_manifest.read_bytes() + b"# \xff\xfe\n")
    response = await protocol.dispatch("initialize", {"manifestPath": str(python_manifest)})

    assert response["error"]["kind"] == "ManifestLoadError"
    assert response["error"]["context"]["procedure"] == "initialize"
    assert protocol.state is ProtocolState.UNINITIALIZED
