"""Immutable recipe descriptor and its canonical encodings."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

import cbor2

from buildbackend.requirements import Requirements
from buildbackend.specs import PackageName


class NoArchType(StrEnum):
    NONE = "none"
    PYTHON = "python"
    GENERIC = "generic"

    @property
    def is_python(self) -> bool:
        return self is NoArchType.PYTHON

    @property
    def is_none(self) -> bool:
        return self is NoArchType.NONE

    def to_wire(self) -> str | None:
        return None if self.is_none else self.value


@dataclass(frozen=True, slots=True)
class BuildString:
    """How the build string is obtained.

    Exactly one of ``template`` (rendered with ``str.format_map``) or
    ``resolved`` is set; with neither, the default ``{hash}_{build_number}``
    is derived.
    """

    template: str | None = None
    resolved: str | None = None

    @classmethod
    def derived(cls) -> BuildString:
        return cls()

    @classmethod
    def user_template(cls, template: str) -> BuildString:
        return cls(template=template)

    @classmethod
    def fixed(cls, value: str) -> BuildString:
        return cls(resolved=value)


@dataclass(frozen=True, slots=True)
class Package:
    name: PackageName
    version: str


@dataclass(frozen=True, slots=True)
class PathSource:
    path: Path
    use_gitignore: bool = True
    target_directory: str | None = None


@dataclass(frozen=True, slots=True)
class Build:
    number: int = 0
    string: BuildString = field(default_factory=BuildString.derived)
    script: tuple[str, ...] = ()
    noarch: NoArchType = NoArchType.NONE


@dataclass(frozen=True, slots=True)
class About:
    license: str | None = None
    license_family: str | None = None
    summary: str | None = None
    homepage: str | None = None


@dataclass(frozen=True, slots=True)
class Recipe:
    package: Package
    source: tuple[PathSource, ...]
    build: Build
    requirements: Requirements
    about: About = field(default_factory=About)
    context: Mapping[str, str] = field(default_factory=dict)
    schema_version: int = 1

    def __post_init__(self) -> None:
        if not self.source:
            raise ValueError("a recipe requires at least one explicit source location")

    @property
    def name(self) -> PackageName:
        return self.package.name

    @property
    def version(self) -> str:
        return self.package.version

    def with_build_string(self, value: str) -> Recipe:
        return dataclasses.replace(
            self,
            build=dataclasses.replace(self.build, string=BuildString.fixed(value)),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "context": dict(sorted(self.context.items())),
            "package": {"name": str(self.package.name), "version": self.package.version},
            "source": [
                {
                    "path": str(source.path),
                    "use_gitignore": source.use_gitignore,
                    "target_directory": source.target_directory,
                }
                for source in self.source
            ],
            "build": {
                "number": self.build.number,
                "string": {
                    "template": self.build.string.template,
                    "resolved": self.build.string.resolved,
                },
                "script": list(self.build.script),
                "noarch": self.build.noarch.value,
            },
            "requirements": self.requirements.to_payload(),
            "about": {
                "license": self.about.license,
                "license_family": self.about.license_family,
                "summary": self.about.summary,
                "homepage": self.about.homepage,
            },
        }

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self.to_payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self) -> bytes:
        return cbor2.dumps(self.to_payload(), canonical=True)

    def digest(self) -> str:
        return hashlib.sha256(self.to_cbor()).hexdigest()


__all__ = [
    "About",
    "Build",
    "BuildString",
    "NoArchType",
    "Package",
    "PathSource",
    "Recipe",
]
