"""Per-phase requirement resolution and implicit tool injection."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from buildbackend.channels import ChannelConfig
from buildbackend.manifest import Dependencies, Manifest, SpecType
from buildbackend.platforms import Platform
from buildbackend.specs import MatchSpec, MatchspecExtractor, PackageName, PixiSpec


@dataclass(frozen=True, slots=True)
class PhaseDependencies:
    """The flattened abstract dependency sets of one package for one platform."""

    build: Dependencies
    host: Dependencies
    run: Dependencies

    @classmethod
    def collect(cls, manifest: Manifest, platform: Platform | None) -> PhaseDependencies:
        return cls(
            build=manifest.dependencies(SpecType.BUILD, platform),
            host=manifest.dependencies(SpecType.HOST, platform),
            run=manifest.dependencies(SpecType.RUN, platform),
        )

    def phase(self, spec_type: SpecType) -> Dependencies:
        if spec_type is SpecType.BUILD:
            return self.build
        if spec_type is SpecType.HOST:
            return self.host
        return self.run

    def declares(self, name: str, *phases: SpecType) -> bool:
        selected = phases or tuple(SpecType)
        return any(self.phase(spec_type).contains_key(name) for spec_type in selected)


@dataclass(frozen=True, slots=True)
class ToolInjection:
    """Implicit tools a backend kind needs in one phase."""

    phase: SpecType
    tools: tuple[str, ...]
    copy_from_run: bool = False


@dataclass(frozen=True, slots=True)
class Requirements:
    build: tuple[MatchSpec, ...] = ()
    host: tuple[MatchSpec, ...] = ()
    run: tuple[MatchSpec, ...] = ()
    run_constraints: tuple[MatchSpec, ...] = ()

    def names(self, spec_type: SpecType) -> tuple[str, ...]:
        specs = {SpecType.BUILD: self.build, SpecType.HOST: self.host, SpecType.RUN: self.run}
        return tuple(str(spec.name) for spec in specs[spec_type])

    def to_payload(self) -> dict[str, list[str]]:
        return {
            "build": [str(spec) for spec in self.build],
            "host": [str(spec) for spec in self.host],
            "run": [str(spec) for spec in self.run],
            "run_constraints": [str(spec) for spec in self.run_constraints],
        }


def inject_tools(dependencies: PhaseDependencies, injection: ToolInjection) -> PhaseDependencies:
    """Return dependencies with the injected tools present.

    A tool already declared in the build or host phase is left untouched.
    When ``copy_from_run`` is set, a run-phase declaration is copied into the
    injection phase instead of an unconstrained default.
    """
    target = dependencies.phase(injection.phase).copy()
    for tool in injection.tools:
        if dependencies.declares(tool, SpecType.BUILD, SpecType.HOST):
            continue
        run_spec = dependencies.run.get(tool) if injection.copy_from_run else None
        target.insert(tool, run_spec if run_spec is not None else PixiSpec())

    phases = {
        SpecType.BUILD: dependencies.build,
        SpecType.HOST: dependencies.host,
        SpecType.RUN: dependencies.run,
    }
    phases[injection.phase] = target
    return PhaseDependencies(
        build=phases[SpecType.BUILD],
        host=phases[SpecType.HOST],
        run=phases[SpecType.RUN],
    )


def injected_names(before: PhaseDependencies, after: PhaseDependencies) -> tuple[str, ...]:
    injected: list[str] = []
    for spec_type in SpecType:
        existing = set(before.phase(spec_type).names())
        injected.extend(
            str(name) for name in after.phase(spec_type).names() if name not in existing
        )
    return tuple(injected)


def extract_requirements(
    dependencies: PhaseDependencies,
    channel_config: ChannelConfig,
    *,
    self_name: PackageName | None = None,
    extra_build: Iterable[MatchSpec] = (),
) -> Requirements:
    """Convert abstract specs to match specs, dropping references to the package itself.

    *extra_build* specs (compilers) are appended to the build phase unless a
    spec with the same name is already present.
    """

    def extractor() -> MatchspecExtractor:
        return MatchspecExtractor(channel_config).with_ignore_self(True, self_name)

    build = extractor().extract(dependencies.build.items())
    present = {spec.name for spec in build}
    for spec in extra_build:
        if spec.name not in present:
            build.append(spec)
            present.add(spec.name)

    return Requirements(
        build=tuple(build),
        host=tuple(extractor().extract(dependencies.host.items())),
        run=tuple(extractor().extract(dependencies.run.items())),
    )


__all__ = [
    "PhaseDependencies",
    "Requirements",
    "ToolInjection",
    "extract_requirements",
    "inject_tools",
    "injected_names",
]
