"""Policy for compiled C/C++ (and Fortran) projects configured with CMake and Ninja."""

from __future__ import annotations

import re
from dataclasses import dataclass

from buildbackend.build_script import BuildPlatform, CMakeScriptContext
from buildbackend.config import BackendConfig
from buildbackend.errors import ManifestError
from buildbackend.manifest import Manifest, SpecType
from buildbackend.platforms import Platform
from buildbackend.recipe import NoArchType
from buildbackend.requirements import PhaseDependencies, ToolInjection
from buildbackend.specs import MatchSpec, PackageName

INPUT_GLOBS: tuple[str, ...] = (
    "**/*.{c,cc,cxx,cpp,h,hpp,hxx}",
    "**/*.{cmake,cmake.in}",
    "**/CMakeLists.txt",
)

DEFAULT_LANGUAGES: tuple[str, ...] = ("cxx",)

_DEFAULT_COMPILERS: dict[str, dict[str, str]] = {
    "linux": {"c": "gcc", "cxx": "gxx", "fortran": "gfortran"},
    "osx": {"c": "clang", "cxx": "clangxx", "fortran": "gfortran"},
    "win": {"c": "vs2019", "cxx": "vs2019"},
}

_PROJECT_CALL = re.compile(r"\bproject\s*\(([^)]*)\)", re.IGNORECASE)
_PROJECT_KEYWORDS = frozenset(("VERSION", "DESCRIPTION", "HOMEPAGE_URL", "LANGUAGES"))


def default_compiler(platform: Platform, language: str) -> str | None:
    if platform.family is None:
        return None
    return _DEFAULT_COMPILERS.get(platform.family, {}).get(language.lower())


def discover_languages(cmakelists: str) -> tuple[str, ...] | None:
    """Return the languages named by the first ``project()`` call, if any."""
    match = _PROJECT_CALL.search(cmakelists)
    if match is None:
        return None
    tokens = [token.strip("\"'") for token in match.group(1).split()][1:]
    upper = [token.upper() for token in tokens]
    start = upper.index("LANGUAGES") + 1 if "LANGUAGES" in upper else 0
    selected: list[str] = []
    for token in tokens[start:]:
        if token.upper() in _PROJECT_KEYWORDS:
            break
        selected.append(token)
    if not selected:
        return None
    if any(token.upper() == "NONE" for token in selected):
        return ()
    return tuple(token.lower() for token in selected)


@dataclass(frozen=True, slots=True)
class CMakePolicy:
    name: str = "pixi-build-cmake"
    keep_build: bool = True

    def noarch(self, config: BackendConfig) -> NoArchType:
        return NoArchType.NONE

    def target_platform(self, host_platform: Platform, config: BackendConfig) -> Platform:
        return host_platform

    def injection(self, dependencies: PhaseDependencies) -> ToolInjection:
        return ToolInjection(phase=SpecType.BUILD, tools=("cmake", "ninja"))

    def languages(self, manifest: Manifest, config: BackendConfig) -> tuple[str, ...]:
        if config.languages is not None:
            return tuple(language.lower() for language in config.languages)
        cmakelists = manifest.manifest_root / "CMakeLists.txt"
        if cmakelists.is_file():
            try:
                text = cmakelists.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                raise ManifestError(
                    f"failed to read {cmakelists}",
                    hint="Set `languages` in [package.build.configuration] to skip discovery.",
                    context={"path": str(cmakelists)},
                ) from exc
            discovered = discover_languages(text)
            if discovered is not None:
                return discovered
        return DEFAULT_LANGUAGES

    def compilers(
        self,
        manifest: Manifest,
        config: BackendConfig,
        target_platform: Platform,
    ) -> tuple[MatchSpec, ...]:
        specs: list[MatchSpec] = []
        for language in self.languages(manifest, config):
            compiler = default_compiler(target_platform, language)
            if compiler is None:
                continue
            spec = MatchSpec(name=PackageName.parse(f"{compiler}_{target_platform}"))
            if spec not in specs:
                specs.append(spec)
        return tuple(specs)

    def build_script(
        self,
        manifest: Manifest,
        dependencies: PhaseDependencies,
        config: BackendConfig,
        build_platform: Platform,
    ) -> tuple[str, ...]:
        return CMakeScriptContext(
            build_platform=BuildPlatform.from_platform(build_platform),
            source_dir=str(manifest.manifest_root),
            extra_args=config.extra_args,
            env=config.env,
        ).render()

    def input_globs(self, config: BackendConfig) -> tuple[str, ...]:
        return INPUT_GLOBS
