"""Platform-specific build script templates."""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from buildbackend.manifest import SpecType
from buildbackend.platforms import Platform
from buildbackend.requirements import PhaseDependencies

WINDOWS_ERROR_CHECK = "if errorlevel 1 exit 1"


class Installer(StrEnum):
    PIP = "pip"
    UV = "uv"

    @property
    def package_name(self) -> str:
        return self.value

    @classmethod
    def detect(cls, dependencies: PhaseDependencies) -> Installer:
        """``uv`` when any phase declares it, otherwise ``pip``."""
        if dependencies.declares(cls.UV.package_name, *SpecType):
            return cls.UV
        return cls.PIP


class BuildPlatform(StrEnum):
    UNIX = "unix"
    WINDOWS = "windows"

    @classmethod
    def from_platform(cls, platform: Platform) -> BuildPlatform:
        return cls.WINDOWS if platform.is_windows else cls.UNIX

    def var(self, name: str) -> str:
        return f"%{name}%" if self is BuildPlatform.WINDOWS else f"${name}"

    def env_lines(self, env: Mapping[str, str]) -> list[str]:
        if self is BuildPlatform.WINDOWS:
            return [f'set "{key}={value}"' for key, value in sorted(env.items())]
        return [f"export {key}={shlex.quote(value)}" for key, value in sorted(env.items())]

    def checked(self, commands: list[str]) -> list[str]:
        if self is not BuildPlatform.WINDOWS:
            return commands
        lines: list[str] = []
        for command in commands:
            lines.extend((command, WINDOWS_ERROR_CHECK))
        return lines


@dataclass(frozen=True, slots=True)
class PythonScriptContext:
    installer: Installer
    build_platform: BuildPlatform
    extra_args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)

    def render(self) -> tuple[str, ...]:
        python = self.build_platform.var("PYTHON")
        src_dir = self.build_platform.var("SRC_DIR")
        if self.installer is Installer.UV:
            command = ["uv", "pip", "install", "--python", python]
        else:
            command = [python, "-m", "pip", "install", "--ignore-installed"]
        command += ["-vv", "--no-deps", "--no-build-isolation", *self.extra_args, src_dir]

        lines = self.build_platform.env_lines(self.env)
        lines += self.build_platform.checked([" ".join(command)])
        return tuple(lines)


@dataclass(frozen=True, slots=True)
class CMakeScriptContext:
    build_platform: BuildPlatform
    source_dir: str
    extra_args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)

    def render(self) -> tuple[str, ...]:
        platform = self.build_platform
        if platform is BuildPlatform.WINDOWS:
            build_dir = f"{platform.var('SRC_DIR')}\\..\\build"
            prefix = platform.var("LIBRARY_PREFIX")
            source_dir = f'"{self.source_dir}"'
        else:
            build_dir = f"{platform.var('SRC_DIR')}/../build"
            prefix = platform.var("PREFIX")
            source_dir = shlex.quote(self.source_dir)

        configure = [
            "cmake",
            platform.var("CMAKE_ARGS"),
            "-GNinja",
            "-DCMAKE_BUILD_TYPE=Release",
            f"-DCMAKE_INSTALL_PREFIX={prefix}",
            "-DBUILD_SHARED_LIBS=ON",
            *self.extra_args,
            "-B",
            build_dir,
            "-S",
            source_dir,
        ]
        commands = [
            " ".join(configure),
            f"cmake --build {build_dir}",
            f"cmake --install {build_dir}",
        ]
        return tuple(platform.env_lines(self.env) + platform.checked(commands))


__all__ = [
    "BuildPlatform",
    "CMakeScriptContext",
    "Installer",
    "PythonScriptContext",
]
