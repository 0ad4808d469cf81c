"""In-process execution engine for testing and development.

Produces deterministic placeholder archives without running the build
script, which makes it suitable for:
- Unit tests that exercise the protocol end to end
- Frontends that only need the metadata a build would produce
- CI environments without compilers or package tooling
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

from buildbackend.config import ToolConfiguration
from buildbackend.engines.base import artifact_path, render_index_json
from buildbackend.metadata import Output


@dataclass(slots=True)
class InProcessEngine:
    """Engine that writes a deterministic placeholder archive in-process."""

    name: str = "inprocess"

    async def run(self, output: Output, tool_config: ToolConfiguration) -> tuple[Output, Path]:
        index = render_index_json(output)
        path = artifact_path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha256(output.recipe.to_cbor() + index.encode("utf-8")).hexdigest()
        path.write_text(
            f"buildbackend-artifact: {output.identifier()}\ndigest={digest}\n{index}",
            encoding="utf-8",
        )
        return output.with_build_summary(artifact=str(path), engine=self.name), path
