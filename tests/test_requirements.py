from pathlib import Path

from buildbackend.channels import ChannelConfig
from buildbackend.config import BackendConfig
from buildbackend.manifest import Manifest, SpecType
from buildbackend.platforms import Platform
from buildbackend.policies import CMakePolicy, PythonPolicy
from buildbackend.requirements import (
    PhaseDependencies,
    Requirements,
    extract_requirements,
    inject_tools,
    injected_names,
)
from buildbackend.specs import PackageName


def _manifest(tmp_path: Path, tables: str, name: str = "demo") -> Manifest:
    raw = f'[package]\nname = "{name}"\nversion = "1.0"\n{tables}'
    return Manifest.from_str(tmp_path / "pixi.toml", raw)


def _python_requirements(tmp_path: Path, tables: str) -> Requirements:
    manifest = _manifest(tmp_path, tables)
    declared = PhaseDependencies.collect(manifest, Platform.LINUX_64)
    injected = inject_tools(declared, PythonPolicy().injection(declared))
    return extract_requirements(
        injected,
        ChannelConfig.default_with_root_dir(tmp_path),
        self_name=PackageName.parse("demo"),
    )


def _cmake_requirements(tmp_path: Path, tables: str, platform: Platform) -> Requirements:
    manifest = _manifest(tmp_path, tables)
    policy = CMakePolicy()
    declared = PhaseDependencies.collect(manifest, platform)
    injected = inject_tools(declared, policy.injection(declared))
    return extract_requirements(
        injected,
        ChannelConfig.default_with_root_dir(tmp_path),
        self_name=PackageName.parse("demo"),
        extra_build=policy.compilers(manifest, BackendConfig(), platform),
    )


def test_python_host_gets_installer_and_interpreter(tmp_path: Path) -> None:
    requirements = _python_requirements(tmp_path, '[package.run-dependencies]\nfoobar = "3.2.1"\n')

    assert requirements.names(SpecType.HOST) == ("pip", "python")
    assert [str(spec) for spec in requirements.run] == ["foobar 3.2.1"]
    assert requirements.build == ()


def test_uv_in_host_replaces_pip(tmp_path: Path) -> None:
    requirements = _python_requirements(tmp_path, '[package.host-dependencies]\nuv = "*"\n')
    assert requirements.names(SpecType.HOST) == ("uv", "python")


def test_run_specs_are_copied_into_host(tmp_path: Path) -> None:
    tables = '[package.run-dependencies]\nuv = ">=0.4"\npython = ">=3.10"\n'
    requirements = _python_requirements(tmp_path, tables)

    assert [str(spec) for spec in requirements.host] == ["uv >=0.4", "python >=3.10"]
    assert [str(spec) for spec in requirements.run] == ["uv >=0.4", "python >=3.10"]


def test_declared_installer_is_not_duplicated(tmp_path: Path) -> None:
    tables = '[package.host-dependencies]\npip = ">=23"\n'
    requirements = _python_requirements(tmp_path, tables)

    assert requirements.names(SpecType.HOST) == ("pip", "python")
    assert str(requirements.host[0]) == "pip >=23"


def test_tool_declared_in_build_is_not_injected_into_host(tmp_path: Path) -> None:
    tables = '[package.build-dependencies]\npython = "3.11.*"\n'
    requirements = _python_requirements(tmp_path, tables)

    assert requirements.names(SpecType.HOST) == ("pip",)
    assert requirements.names(SpecType.BUILD) == ("python",)


def test_cmake_build_gets_tools_and_compiler(tmp_path: Path) -> None:
    tables = '[package.host-dependencies]\nsdl2 = ">=2.26.5,<3.0"\n'
    requirements = _cmake_requirements(tmp_path, tables, Platform.LINUX_64)

    assert requirements.names(SpecType.BUILD) == ("cmake", "ninja", "gxx_linux-64")
    assert [str(spec) for spec in requirements.host] == ["sdl2 >=2.26.5,<3.0"]


def test_declared_cmake_keeps_its_version(tmp_path: Path) -> None:
    tables = '[package.build-dependencies]\ncmake = ">=3.28"\n'
    requirements = _cmake_requirements(tmp_path, tables, Platform.OSX_ARM64)

    assert [str(spec) for spec in requirements.build] == [
        "cmake >=3.28",
        "ninja",
        "clangxx_osx-arm64",
    ]


def test_self_references_are_dropped(tmp_path: Path) -> None:
    tables = '[package.run-dependencies]\ndemo = { path = "." }\nfoo = "1"\n'
    requirements = _python_requirements(tmp_path, tables)
    assert [str(spec) for spec in requirements.run] == ["foo 1"]


def test_injected_names_reports_only_new_entries(tmp_path: Path) -> None:
    manifest = _manifest(tmp_path, '[package.host-dependencies]\npip = "*"\n')
    declared = PhaseDependencies.collect(manifest, Platform.LINUX_64)
    injected = inject_tools(declared, PythonPolicy().injection(declared))

    assert injected_names(declared, injected) == ("python",)
    # The input sets are left untouched.
    assert declared.host.names() == (PackageName.parse("pip"),)


def test_requirements_payload() -> None:
    assert Requirements().to_payload() == {
        "build": [],
        "host": [],
        "run": [],
        "run_constraints": [],
    }
