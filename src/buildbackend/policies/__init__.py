"""Backend kinds and their lookup by name."""

from __future__ import annotations

from buildbackend.errors import ManifestError

from .base import BackendPolicy
from .cmake import CMakePolicy, default_compiler, discover_languages
from .python import PythonPolicy

_POLICIES: dict[str, type[PythonPolicy] | type[CMakePolicy]] = {
    "python": PythonPolicy,
    "pixi-build-python": PythonPolicy,
    "cmake": CMakePolicy,
    "pixi-build-cmake": CMakePolicy,
}


def get_policy(name: str) -> BackendPolicy:
    try:
        return _POLICIES[name]()
    except KeyError as exc:
        raise ManifestError(
            f"Unknown build backend '{name}'.",
            hint=f"Use one of: {', '.join(sorted(_POLICIES))}.",
            context={"backend": name},
        ) from exc


__all__ = [
    "BackendPolicy",
    "CMakePolicy",
    "PythonPolicy",
    "default_compiler",
    "discover_languages",
    "get_policy",
]
