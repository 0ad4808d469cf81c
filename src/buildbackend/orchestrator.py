"""Drives the dependency solver and execution engine for a synthesized output."""

from __future__ import annotations

import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import TypeVar

from buildbackend.config import ToolConfiguration
from buildbackend.engines import ExecutionEngine, InProcessEngine
from buildbackend.errors import (
    BuildBackendError,
    BuildError,
    IoError,
    ResolutionError,
    tagged,
)
from buildbackend.metadata import Output
from buildbackend.solver import DependencySolver, InProcessSolver

T = TypeVar("T")


@dataclass(slots=True)
class TemporaryRenderedRecipe:
    """The recipe of an output rendered to a temporary file for the duration of a block.

    The file and its directory are removed on every exit path.
    """

    output: Output
    directory: Path | None = None
    path: Path | None = field(default=None, init=False)
    _tempdir: tempfile.TemporaryDirectory[str] | None = field(
        default=None, init=False, repr=False
    )

    @classmethod
    def from_output(cls, output: Output) -> TemporaryRenderedRecipe:
        return cls(output=output, directory=output.build_configuration.directories.build_dir)

    def __enter__(self) -> TemporaryRenderedRecipe:
        parent = None if self.directory is None else str(self.directory)
        try:
            self._tempdir = tempfile.TemporaryDirectory(prefix="recipe-", dir=parent)
            self.path = Path(self._tempdir.name) / "recipe.json"
            self.output.recipe.to_json(self.path)
        except OSError as exc:
            self.cleanup()
            raise IoError(
                "failed to render the recipe to a temporary file",
                context={"directory": str(parent or tempfile.gettempdir())},
            ) from exc
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.cleanup()

    async def __aenter__(self) -> TemporaryRenderedRecipe:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self._tempdir is not None:
            self._tempdir.cleanup()
            self._tempdir = None
        self.path = None

    def within_context(self, func: Callable[[], T]) -> T:
        with self:
            return func()

    async def within_context_async(self, func: Callable[[], Awaitable[T]]) -> T:
        async with self:
            return await func()


async def resolve_metadata(
    output: Output,
    tool_config: ToolConfiguration,
    solver: DependencySolver,
    *,
    procedure: str | None = None,
) -> Output:
    """Run the solver and return *output* with finalized dependencies."""
    logger = tool_config.logger
    logger.log(
        operation="solve",
        message=f"resolving dependencies of {output.name}",
        procedure=procedure,
        phase="solve",
        package=output.name,
        extra={"solver": solver.name},
    )
    with tagged(procedure=procedure, phase="solve"):
        try:
            solved = await solver.resolve(output, tool_config)
        except BuildBackendError:
            raise
        except Exception as exc:
            raise ResolutionError(
                f"dependency resolution failed for {output.name}",
                context={"solver": solver.name, "package": output.name},
            ) from exc
        if solved.finalized_dependencies is None:
            raise ResolutionError(
                "the solver returned without finalized dependencies",
                context={"solver": solver.name, "package": output.name},
            )

    logger.log(
        operation="solve",
        message=f"resolved dependencies of {output.name}",
        procedure=procedure,
        phase="solve",
        package=output.name,
        extra={"depends": [str(dep) for dep in solved.resolved_dependencies().run.depends]},
    )
    return solved


async def run_build(
    output: Output,
    tool_config: ToolConfiguration,
    solver: DependencySolver,
    engine: ExecutionEngine,
    *,
    procedure: str | None = None,
) -> tuple[Output, Path]:
    """Solve, fix the build string, and hand the finalized output to the engine."""
    solved = await resolve_metadata(output, tool_config, solver, procedure=procedure)
    logger = tool_config.logger
    with tagged(procedure=procedure, phase="build"):
        final = solved.with_resolved_build_string()
        logger.log(
            operation="build",
            message=f"building {final.identifier()}",
            procedure=procedure,
            phase="build",
            package=final.name,
            extra={"engine": engine.name},
        )
        try:
            built, path = await engine.run(final, tool_config)
        except BuildBackendError:
            raise
        except Exception as exc:
            raise BuildError(
                f"build failed for {final.identifier()}",
                context={"engine": engine.name, "package": final.name},
            ) from exc

    logger.log(
        operation="build",
        message=f"built {final.identifier()}",
        procedure=procedure,
        phase="build",
        package=final.name,
        extra={"artifact": str(path)},
    )
    return built, path


@dataclass(slots=True)
class BuildOrchestrator:
    """Runs the solver and engine inside a scoped rendering of the recipe."""

    solver: DependencySolver = field(default_factory=InProcessSolver)
    engine: ExecutionEngine = field(default_factory=InProcessEngine)

    async def metadata(
        self,
        output: Output,
        tool_config: ToolConfiguration,
        *,
        procedure: str | None = None,
    ) -> Output:
        async with TemporaryRenderedRecipe.from_output(output):
            return await resolve_metadata(output, tool_config, self.solver, procedure=procedure)

    async def build(
        self,
        output: Output,
        tool_config: ToolConfiguration,
        *,
        procedure: str | None = None,
    ) -> tuple[Output, Path]:
        async with TemporaryRenderedRecipe.from_output(output):
            return await run_build(
                output, tool_config, self.solver, self.engine, procedure=procedure
            )


__all__ = [
    "BuildOrchestrator",
    "TemporaryRenderedRecipe",
    "resolve_metadata",
    "run_build",
]
