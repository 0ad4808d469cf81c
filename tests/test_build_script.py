import pytest

from buildbackend.build_script import (
    BuildPlatform,
    CMakeScriptContext,
    Installer,
    PythonScriptContext,
)
from buildbackend.manifest import Dependencies
from buildbackend.platforms import Platform
from buildbackend.requirements import PhaseDependencies
from buildbackend.specs import PackageName, PixiSpec


def _phases(**names: tuple[str, ...]) -> PhaseDependencies:
    def group(key: str) -> Dependencies:
        return Dependencies((PackageName.parse(name), PixiSpec()) for name in names.get(key, ()))

    return PhaseDependencies(build=group("build"), host=group("host"), run=group("run"))


@pytest.mark.parametrize(
    ("phases", "expected"),
    [
        ({}, Installer.PIP),
        ({"host": ("uv",)}, Installer.UV),
        ({"build": ("uv",)}, Installer.UV),
        ({"run": ("uv",)}, Installer.UV),
        ({"host": ("pip", "python")}, Installer.PIP),
    ],
)
def test_installer_detection(phases: dict[str, tuple[str, ...]], expected: Installer) -> None:
    assert Installer.detect(_phases(**phases)) is expected


def test_build_platform_from_platform() -> None:
    assert BuildPlatform.from_platform(Platform.WIN_64) is BuildPlatform.WINDOWS
    assert BuildPlatform.from_platform(Platform.LINUX_AARCH64) is BuildPlatform.UNIX
    assert BuildPlatform.from_platform(Platform.OSX_ARM64) is BuildPlatform.UNIX


def test_pip_script_on_unix() -> None:
    script = PythonScriptContext(Installer.PIP, BuildPlatform.UNIX).render()
    assert script == (
        "$PYTHON -m pip install --ignore-installed -vv --no-deps --no-build-isolation $SRC_DIR",
    )


def test_uv_script_on_unix() -> None:
    script = PythonScriptContext(Installer.UV, BuildPlatform.UNIX).render()
    assert script == (
        "uv pip install --python $PYTHON -vv --no-deps --no-build-isolation $SRC_DIR",
    )


def test_pip_script_on_windows_checks_errors() -> None:
    script = PythonScriptContext(Installer.PIP, BuildPlatform.WINDOWS).render()
    assert script == (
        "%PYTHON% -m pip install --ignore-installed -vv --no-deps --no-build-isolation %SRC_DIR%",
        "if errorlevel 1 exit 1",
    )


def test_python_script_with_extra_args_and_env() -> None:
    script = PythonScriptContext(
        Installer.PIP,
        BuildPlatform.UNIX,
        extra_args=("--config-settings=editable=false",),
        env={"SETUPTOOLS_SCM_PRETEND_VERSION": "1.2.3", "GREETING": "hello world"},
    ).render()
    assert script[:2] == (
        "export GREETING='hello world'",
        "export SETUPTOOLS_SCM_PRETEND_VERSION=1.2.3",
    )
    assert script[2].endswith("--no-build-isolation --config-settings=editable=false $SRC_DIR")


def test_windows_env_lines() -> None:
    assert BuildPlatform.WINDOWS.env_lines({"B": "2", "A": "1"}) == ['set "A=1"', 'set "B=2"']


def test_cmake_script_on_unix() -> None:
    script = CMakeScriptContext(BuildPlatform.UNIX, "/work/my project").render()
    assert script == (
        "cmake $CMAKE_ARGS -GNinja -DCMAKE_BUILD_TYPE=Release -DCMAKE_INSTALL_PREFIX=$PREFIX "
        "-DBUILD_SHARED_LIBS=ON -B $SRC_DIR/../build -S '/work/my project'",
        "cmake --build $SRC_DIR/../build",
        "cmake --install $SRC_DIR/../build",
    )


def test_cmake_script_on_windows() -> None:
    script = CMakeScriptContext(
        BuildPlatform.WINDOWS,
        "C:\\src",
        extra_args=("-DFOO=ON",),
    ).render()
    assert script == (
        "cmake %CMAKE_ARGS% -GNinja -DCMAKE_BUILD_TYPE=Release "
        "-DCMAKE_INSTALL_PREFIX=%LIBRARY_PREFIX% -DBUILD_SHARED_LIBS=ON -DFOO=ON "
        '-B %SRC_DIR%\\..\\build -S "C:\\src"',
        "if errorlevel 1 exit 1",
        "cmake --build %SRC_DIR%\\..\\build",
        "if errorlevel 1 exit 1",
        "cmake --install %SRC_DIR%\\..\\build",
        "if errorlevel 1 exit 1",
    )
