"""Protocol for build execution engines."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from buildbackend.config import ToolConfiguration
from buildbackend.metadata import Output


class ExecutionEngine(Protocol):
    name: str

    async def run(self, output: Output, tool_config: ToolConfiguration) -> tuple[Output, Path]:
        """Build the finalized *output* and return it with the package archive path."""


def artifact_path(output: Output) -> Path:
    """Location of the archive for *output* inside the configured output directory."""
    configuration = output.build_configuration
    extension = configuration.packaging_settings.archive_type.extension
    filename = f"{output.name}-{output.version}-{output.build_string()}{extension}"
    return configuration.directories.output_dir / configuration.subdir / filename


def index_json(output: Output) -> dict[str, Any]:
    """Package index record written into ``info/index.json``."""
    run = output.resolved_dependencies().run
    noarch = output.recipe.build.noarch.to_wire()
    record: dict[str, Any] = {
        "name": output.name,
        "version": output.version,
        "build": output.build_string(),
        "build_number": output.recipe.build.number,
        "subdir": output.build_configuration.subdir,
        "depends": [str(dep) for dep in run.depends],
        "constrains": [str(dep) for dep in run.constraints],
        "license": output.recipe.about.license,
        "license_family": output.recipe.about.license_family,
        "timestamp": int(output.build_configuration.timestamp.timestamp() * 1000),
    }
    if noarch is not None:
        record["noarch"] = noarch
    return record


def render_index_json(output: Output) -> str:
    return json.dumps(index_json(output), indent=2, sort_keys=True) + "\n"
