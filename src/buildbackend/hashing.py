"""Variant hashing and build string derivation."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass

from buildbackend.errors import BuildError
from buildbackend.recipe import Build, NoArchType

# Variant keys that contribute a short prefix to the hash, in prefix order.
PREFIX_KEYS: tuple[tuple[str, str], ...] = (
    ("numpy", "np"),
    ("python", "py"),
    ("perl", "pl"),
    ("lua", "lua"),
    ("r-base", "r"),
)


@dataclass(frozen=True, slots=True)
class HashInfo:
    """Content hash of a variant plus its human readable prefix."""

    hash: str
    prefix: str = ""

    @classmethod
    def from_variant(cls, variant: Mapping[str, str], noarch: NoArchType) -> HashInfo:
        canonical = json.dumps(dict(sorted(variant.items())))
        digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()
        return cls(hash=f"h{digest[:7]}", prefix=_hash_prefix(variant, noarch))

    def __str__(self) -> str:
        return f"{self.prefix}{self.hash}"


def _hash_prefix(variant: Mapping[str, str], noarch: NoArchType) -> str:
    if noarch.is_python:
        return "py"
    parts: list[str] = []
    for key, short in PREFIX_KEYS:
        version = variant.get(key, variant.get(key.replace("-", "_")))
        if version is None:
            continue
        major_minor = "".join(version.split(".")[:2])
        parts.append(f"{short}{major_minor}")
    return "".join(parts)


def resolve_build_string(build: Build, hash_info: HashInfo, context: Mapping[str, str]) -> str:
    """Return the final build string for *build*.

    A resolved string is returned verbatim; a template is rendered with the
    recipe context plus ``hash`` and ``build_number``; otherwise the default
    ``{hash}_{build_number}`` is used.
    """
    if build.string.resolved is not None:
        return build.string.resolved
    if build.string.template is None:
        return f"{hash_info}_{build.number}"

    values: dict[str, object] = dict(context)
    values["hash"] = str(hash_info)
    values["build_number"] = build.number
    try:
        return build.string.template.format_map(values)
    except (KeyError, IndexError, ValueError) as exc:
        raise BuildError(
            f"Unable to render build string template '{build.string.template}'.",
            hint="Templates may reference `hash`, `build_number` and recipe context keys.",
            context={"template": build.string.template},
        ) from exc


__all__ = [
    "HashInfo",
    "resolve_build_string",
]
