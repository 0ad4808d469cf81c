"""Build execution engine interfaces and implementations."""

from .base import ExecutionEngine, artifact_path, index_json, render_index_json
from .inprocess import InProcessEngine
from .script import ScriptEngine

__all__ = [
    "ExecutionEngine",
    "InProcessEngine",
    "ScriptEngine",
    "artifact_path",
    "index_json",
    "render_index_json",
]
