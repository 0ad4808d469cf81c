"""Platform identifiers, virtual packages, and host-machine detection."""

from __future__ import annotations

import os
import platform as _platform
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from buildbackend.errors import DetectionError, PlatformError


class Platform(StrEnum):
    """Conda subdirectory names."""

    NOARCH = "noarch"
    LINUX_32 = "linux-32"
    LINUX_64 = "linux-64"
    LINUX_AARCH64 = "linux-aarch64"
    LINUX_ARMV6L = "linux-armv6l"
    LINUX_ARMV7L = "linux-armv7l"
    LINUX_PPC64LE = "linux-ppc64le"
    LINUX_PPC64 = "linux-ppc64"
    LINUX_S390X = "linux-s390x"
    LINUX_RISCV64 = "linux-riscv64"
    OSX_64 = "osx-64"
    OSX_ARM64 = "osx-arm64"
    WIN_32 = "win-32"
    WIN_64 = "win-64"
    WIN_ARM64 = "win-arm64"
    EMSCRIPTEN_WASM32 = "emscripten-wasm32"
    WASI_WASM32 = "wasi-wasm32"

    @classmethod
    def parse(cls, value: str) -> Platform:
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise PlatformError(
                f"'{value}' is not a known platform.",
                hint="Use a conda subdir such as 'linux-64' or 'osx-arm64'.",
                context={"platform": value},
            ) from exc

    @classmethod
    def current(cls) -> Platform:
        """Return the platform of the running interpreter without probing ABI details."""
        return _current_platform(sys.platform, _platform.machine())

    @property
    def family(self) -> str | None:
        if self is Platform.NOARCH:
            return None
        return self.value.split("-", 1)[0]

    @property
    def arch(self) -> str | None:
        if self is Platform.NOARCH:
            return None
        return self.value.split("-", 1)[1]

    @property
    def is_linux(self) -> bool:
        return self.family == "linux"

    @property
    def is_osx(self) -> bool:
        return self.family == "osx"

    @property
    def is_windows(self) -> bool:
        return self.family == "win"

    @property
    def is_unix(self) -> bool:
        return self.is_linux or self.is_osx or self.family == "emscripten"


_MACHINE_ALIASES: dict[str, str] = {
    "x86_64": "64",
    "amd64": "64",
    "i386": "32",
    "i686": "32",
    "x86": "32",
    "aarch64": "aarch64",
    "arm64": "arm64",
    "armv6l": "armv6l",
    "armv7l": "armv7l",
    "ppc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
}


def _current_platform(sys_platform: str, machine: str) -> Platform:
    arch = _MACHINE_ALIASES.get(machine.lower())
    if sys_platform.startswith("linux"):
        family = "linux"
        if arch == "arm64":
            arch = "aarch64"
    elif sys_platform == "darwin":
        family = "osx"
        if arch == "aarch64":
            arch = "arm64"
    elif sys_platform in ("win32", "cygwin"):
        family = "win"
        if arch == "aarch64":
            arch = "arm64"
    elif sys_platform == "emscripten":
        family, arch = "emscripten", "wasm32"
    elif sys_platform == "wasi":
        family, arch = "wasi", "wasm32"
    else:
        family = sys_platform
    try:
        return Platform(f"{family}-{arch}")
    except ValueError as exc:
        raise DetectionError(
            "Unable to map the current machine to a known platform.",
            context={"sys_platform": sys_platform, "machine": machine},
        ) from exc


@dataclass(frozen=True, slots=True)
class VirtualPackage:
    name: str
    version: str = "0"
    build_string: str = "0"

    @classmethod
    def parse(cls, value: str) -> VirtualPackage:
        parts = value.strip().split("=")
        if not parts[0].startswith("__") or len(parts) > 3:
            raise PlatformError(
                f"'{value}' is not a valid virtual package.",
                hint="Virtual packages look like '__glibc=2.28=0'.",
                context={"virtual_package": value},
            )
        name = parts[0]
        version = parts[1] if len(parts) > 1 and parts[1] else "0"
        build_string = parts[2] if len(parts) > 2 and parts[2] else "0"
        return cls(name=name, version=version, build_string=build_string)

    def __str__(self) -> str:
        return f"{self.name}={self.version}={self.build_string}"


@dataclass(frozen=True, slots=True)
class PlatformWithVirtualPackages:
    """A fully resolved platform, as used in a build configuration."""

    platform: Platform
    virtual_packages: tuple[VirtualPackage, ...] = ()


@dataclass(frozen=True, slots=True)
class PlatformAndVirtualPackages:
    """A platform as supplied by a caller; virtual packages are optional."""

    platform: Platform
    virtual_packages: tuple[VirtualPackage, ...] | None = None

    def resolved(self) -> PlatformWithVirtualPackages:
        return PlatformWithVirtualPackages(
            platform=self.platform,
            virtual_packages=self.virtual_packages or (),
        )


@dataclass(frozen=True, slots=True)
class VirtualPackageOverrides:
    """Per virtual package overrides.

    ``None`` means "detect", an empty string disables the package, anything
    else is used as the version.
    """

    cuda: str | None = None
    glibc: str | None = None
    osx: str | None = None
    linux: str | None = None
    win: str | None = None
    archspec: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> VirtualPackageOverrides:
        env = os.environ if environ is None else environ
        return cls(
            cuda=env.get("CONDA_OVERRIDE_CUDA"),
            glibc=env.get("CONDA_OVERRIDE_GLIBC"),
            osx=env.get("CONDA_OVERRIDE_OSX"),
            linux=env.get("CONDA_OVERRIDE_LINUX"),
            win=env.get("CONDA_OVERRIDE_WIN"),
            archspec=env.get("CONDA_OVERRIDE_ARCHSPEC"),
        )


class PlatformDetector(Protocol):
    def detect(self, overrides: VirtualPackageOverrides) -> PlatformWithVirtualPackages:
        """Probe the current machine and return its platform and virtual packages."""


_VERSION_PREFIX = re.compile(r"^\d+(\.\d+)*")


def _version_prefix(raw: str) -> str | None:
    match = _VERSION_PREFIX.match(raw)
    return match.group(0) if match else None


@dataclass(slots=True)
class HostPlatformDetector:
    """Detect the platform and ABI virtual packages of the running machine."""

    name: str = "host"

    def detect(self, overrides: VirtualPackageOverrides) -> PlatformWithVirtualPackages:
        current = Platform.current()
        packages: list[VirtualPackage] = []

        if current.is_unix:
            packages.append(VirtualPackage("__unix"))
        if current.is_windows:
            packages.extend(self._override_or(overrides.win, "__win", "0"))

        if current.is_linux:
            packages.extend(
                self._override_or(overrides.linux, "__linux", _version_prefix(_platform.release()))
            )
            libc_name, libc_version = _platform.libc_ver()
            detected_glibc = libc_version if libc_name == "glibc" else None
            packages.extend(self._override_or(overrides.glibc, "__glibc", detected_glibc))
        if current.is_osx:
            packages.extend(
                self._override_or(overrides.osx, "__osx", _platform.mac_ver()[0] or None)
            )

        if overrides.cuda:
            packages.append(VirtualPackage("__cuda", overrides.cuda))

        packages.extend(
            VirtualPackage("__archspec", "1", build_string=build)
            for build in self._override_or_raw(overrides.archspec, _platform.machine() or None)
        )
        return PlatformWithVirtualPackages(platform=current, virtual_packages=tuple(packages))

    def _override_or(
        self,
        override: str | None,
        name: str,
        detected: str | None,
    ) -> tuple[VirtualPackage, ...]:
        return tuple(
            VirtualPackage(name, version) for version in self._override_or_raw(override, detected)
        )

    def _override_or_raw(self, override: str | None, detected: str | None) -> tuple[str, ...]:
        if override is not None:
            return (override,) if override else ()
        return (detected,) if detected else ()


__all__ = [
    "HostPlatformDetector",
    "Platform",
    "PlatformAndVirtualPackages",
    "PlatformDetector",
    "PlatformWithVirtualPackages",
    "VirtualPackage",
    "VirtualPackageOverrides",
]
