"""Package names, abstract dependency specs, and concrete match expressions."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from buildbackend.channels import ChannelConfig
from buildbackend.errors import ChannelResolutionFailed, InvalidPackageName, InvalidSpec

_PACKAGE_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")
_VERSION_SPEC = re.compile(r"^[0-9A-Za-z.*_+!,|<>=~()\- ]+$")
_BUILD_SPEC = re.compile(r"^[0-9A-Za-z.*_+\-]+$")
_OPERATOR_START = re.compile(r"[<>=!~ ]")

SOURCE_KEYS = ("path", "git", "url")
GIT_REF_KEYS = ("branch", "tag", "rev")
SPEC_KEYS = frozenset(
    ("version", "build", "channel", "subdirectory", "sha256", "md5", *SOURCE_KEYS, *GIT_REF_KEYS)
)


@dataclass(frozen=True, slots=True, order=True)
class PackageName:
    """A conda package name; equality and ordering use the normalized form."""

    normalized: str
    source: str = field(compare=False)

    @classmethod
    def parse(cls, value: str) -> PackageName:
        if not isinstance(value, str) or not _PACKAGE_NAME.fullmatch(value):
            raise InvalidPackageName(
                f"'{value}' is not a valid package name.",
                hint="Package names may contain letters, digits, '_', '-' and '.'.",
                context={"name": str(value)},
            )
        return cls(normalized=value.lower(), source=value)

    def __str__(self) -> str:
        return self.normalized


@dataclass(frozen=True, slots=True)
class MatchSpec:
    """A concrete, resolvable match expression such as ``conda-forge::numpy >=1.20 py*``."""

    name: PackageName
    version: str | None = None
    build: str | None = None
    channel: str | None = None

    @classmethod
    def parse(cls, value: str) -> MatchSpec:
        text = value.strip()
        channel: str | None = None
        if "::" in text:
            channel, text = text.split("::", 1)
            channel = channel.strip() or None
        operator = _OPERATOR_START.search(text)
        if operator is None:
            name_part, rest = text, ""
        else:
            name_part, rest = text[: operator.start()], text[operator.start() :].strip()
        name = PackageName.parse(name_part)

        version: str | None = None
        build: str | None = None
        if rest:
            # `<version> <build>`: the second token carries no operators.
            tokens = rest.split()
            if (
                len(tokens) == 2
                and _BUILD_SPEC.fullmatch(tokens[1])
                and not tokens[0].endswith((",", "|"))
            ):
                version, build = tokens
            else:
                version = rest
            version = _normalize_version(version, original=value)
        return cls(name=name, version=version, build=build, channel=channel)

    def __str__(self) -> str:
        prefix = f"{self.channel}::" if self.channel else ""
        parts = [f"{prefix}{self.name}"]
        if self.version is not None or self.build is not None:
            parts.append(self.version or "*")
        if self.build is not None:
            parts.append(self.build)
        return " ".join(parts)


@dataclass(frozen=True, slots=True)
class PixiSpec:
    """An abstract dependency spec as written in a manifest.

    Binary specs carry ``version``/``build``/``channel``. Source specs carry
    exactly one of ``path``, ``git`` or ``url``.
    """

    version: str | None = None
    build: str | None = None
    channel: str | None = None
    path: str | None = None
    git: str | None = None
    branch: str | None = None
    tag: str | None = None
    rev: str | None = None
    subdirectory: str | None = None
    url: str | None = None
    sha256: str | None = None
    md5: str | None = None

    @classmethod
    def from_toml(cls, value: Any, *, name: str = "") -> PixiSpec:
        if isinstance(value, str):
            return cls(version=_normalize_version(value, original=value, name=name))
        if not isinstance(value, Mapping):
            raise InvalidSpec(
                "Dependency specs must be a version string or a table.",
                context={"name": name, "value": repr(value)},
            )

        unknown = sorted(set(value) - SPEC_KEYS)
        if unknown:
            raise InvalidSpec(
                "Dependency spec contains unknown keys.",
                context={"name": name, "keys": ",".join(unknown)},
            )
        for key, item in value.items():
            if not isinstance(item, str):
                raise InvalidSpec(
                    f"Dependency spec key `{key}` must be a string.",
                    context={"name": name, "key": key},
                )

        sources = [key for key in SOURCE_KEYS if key in value]
        if len(sources) > 1:
            raise InvalidSpec(
                "Dependency spec mixes source kinds.",
                hint="Use only one of `path`, `git` or `url`.",
                context={"name": name, "keys": ",".join(sources)},
            )
        if sources and ("version" in value or "channel" in value):
            raise InvalidSpec(
                "Source dependencies cannot also pin a version or channel.",
                context={"name": name},
            )
        if "git" not in value and any(key in value for key in GIT_REF_KEYS):
            raise InvalidSpec(
                "Git reference keys require a `git` source.",
                context={"name": name},
            )
        if "subdirectory" in value and not ("git" in value or "url" in value):
            raise InvalidSpec(
                "`subdirectory` is only valid for `git` or `url` sources.",
                context={"name": name},
            )
        if sum(key in value for key in GIT_REF_KEYS) > 1:
            raise InvalidSpec(
                "Only one of `branch`, `tag` or `rev` may be given.",
                context={"name": name},
            )

        version = value.get("version")
        build = value.get("build")
        if build is not None and not _BUILD_SPEC.fullmatch(build):
            raise InvalidSpec(
                f"'{build}' is not a valid build string matcher.",
                context={"name": name},
            )
        return cls(
            version=_normalize_version(version, original=version, name=name)
            if version is not None
            else None,
            build=build,
            channel=value.get("channel"),
            path=value.get("path"),
            git=value.get("git"),
            branch=value.get("branch"),
            tag=value.get("tag"),
            rev=value.get("rev"),
            subdirectory=value.get("subdirectory"),
            url=value.get("url"),
            sha256=value.get("sha256"),
            md5=value.get("md5"),
        )

    @property
    def is_source(self) -> bool:
        return any(getattr(self, key) is not None for key in SOURCE_KEYS)

    def to_match_spec(self, name: PackageName, channel_config: ChannelConfig) -> MatchSpec:
        if self.is_source:
            return MatchSpec(name=name)
        channel: str | None = None
        if self.channel is not None:
            try:
                channel = channel_config.canonical_name(self.channel)
            except ChannelResolutionFailed as exc:
                raise InvalidSpec(
                    f"Dependency '{name}' references an invalid channel.",
                    context={"name": str(name), "channel": self.channel},
                ) from exc
        return MatchSpec(name=name, version=self.version, build=self.build, channel=channel)

    def to_payload(self) -> dict[str, str]:
        return {
            key: getattr(self, key)
            for key in sorted(SPEC_KEYS)
            if getattr(self, key) is not None
        }


@dataclass(slots=True)
class MatchspecExtractor:
    """Convert abstract manifest specs into concrete match specs."""

    channel_config: ChannelConfig
    ignore_self: bool = False
    self_name: PackageName | None = None

    def with_ignore_self(self, ignore: bool, name: PackageName | None = None) -> MatchspecExtractor:
        self.ignore_self = ignore
        if name is not None:
            self.self_name = name
        return self

    def extract(self, dependencies: Iterable[tuple[PackageName, PixiSpec]]) -> list[MatchSpec]:
        specs: list[MatchSpec] = []
        for name, spec in dependencies:
            if self.ignore_self and self._is_self_reference(name, spec):
                continue
            specs.append(spec.to_match_spec(name, self.channel_config))
        return specs

    def _is_self_reference(self, name: PackageName, spec: PixiSpec) -> bool:
        if self.self_name is not None and name == self.self_name:
            return True
        if spec.path is not None:
            root = self.channel_config.root_dir
            target = Path(spec.path).expanduser()
            if not target.is_absolute():
                target = root / target
            return target.resolve() == root.resolve()
        return False


def _normalize_version(value: str, *, original: str, name: str = "") -> str | None:
    version = " ".join(value.split())
    if version in ("", "*"):
        return None
    if not _VERSION_SPEC.fullmatch(version):
        raise InvalidSpec(
            f"'{original}' is not a valid version spec.",
            context={"name": name, "version": original},
        )
    return version


__all__ = [
    "MatchSpec",
    "MatchspecExtractor",
    "PackageName",
    "PixiSpec",
]
