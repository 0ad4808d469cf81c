"""Dependency solver interface and an in-process implementation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from buildbackend.config import ToolConfiguration
from buildbackend.metadata import (
    DependencyInfo,
    FinalizedDependencies,
    Output,
    ResolvedDependencies,
    ResolvedPackage,
    RunDependencies,
)
from buildbackend.platforms import Platform
from buildbackend.specs import MatchSpec

_EXACT_VERSION = re.compile(r"^=?=?(\d[0-9A-Za-z._+]*)$")


class DependencySolver(Protocol):
    name: str

    async def resolve(self, output: Output, tool_config: ToolConfiguration) -> Output:
        """Return *output* with ``finalized_dependencies`` populated."""


@dataclass(slots=True)
class InProcessSolver:
    """Solver that pins every requirement without consulting any channel.

    Exact versions are kept; anything else resolves to version ``0``. Useful
    for tests and for frontends that only need the shape of the result.
    """

    name: str = "inprocess"

    async def resolve(self, output: Output, tool_config: ToolConfiguration) -> Output:
        requirements = output.recipe.requirements
        configuration = output.build_configuration
        compiler_names = {
            spec.name
            for spec in requirements.build
            if str(spec.name).endswith(f"_{configuration.target_platform}")
        }

        build = ResolvedDependencies(
            specs=tuple(
                DependencyInfo(spec, "compiler" if spec.name in compiler_names else "source")
                for spec in requirements.build
            ),
            resolved=tuple(
                _pin(spec, configuration.build_platform.platform) for spec in requirements.build
            ),
        )
        host = ResolvedDependencies(
            specs=tuple(DependencyInfo(spec) for spec in requirements.host),
            resolved=tuple(
                _pin(spec, configuration.host_platform.platform) for spec in requirements.host
            ),
        )
        run = RunDependencies(
            depends=tuple(DependencyInfo(spec) for spec in requirements.run),
            constraints=tuple(DependencyInfo(spec) for spec in requirements.run_constraints),
        )
        return output.with_finalized_dependencies(
            FinalizedDependencies(run=run, build=build, host=host)
        )


def _pin(spec: MatchSpec, platform: Platform) -> ResolvedPackage:
    match = _EXACT_VERSION.fullmatch(spec.version or "")
    return ResolvedPackage(
        name=str(spec.name),
        version=match.group(1) if match else "0",
        build=spec.build if spec.build and "*" not in spec.build else "0",
        subdir=platform.value,
        channel=spec.channel,
    )


__all__ = [
    "DependencySolver",
    "InProcessSolver",
]
