"""Channel configuration and channel-to-URL resolution."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from urllib.parse import urljoin, urlparse

from buildbackend.errors import ChannelResolutionFailed

DEFAULT_CHANNEL_ALIAS = "https://conda.anaconda.org/"

SUPPORTED_SCHEMES = ("http", "https", "file", "s3", "oci", "gcs")

_CHANNEL_NAME = re.compile(r"^[A-Za-z0-9_.\-]+(/[A-Za-z0-9_.\-]+)*$")


@dataclass(frozen=True, slots=True)
class ChannelConfig:
    root_dir: Path
    channel_alias: str = DEFAULT_CHANNEL_ALIAS

    @classmethod
    def default_with_root_dir(cls, root_dir: str | Path) -> ChannelConfig:
        return cls(root_dir=Path(root_dir))

    def resolve(self, channel: str) -> str:
        """Return the base URL of *channel*, always with a trailing slash."""
        value = channel.strip()
        if not value:
            raise ChannelResolutionFailed("Channel names must be non-empty.")

        if _looks_like_path(value):
            path = Path(value).expanduser()
            if not path.is_absolute():
                path = (self.root_dir / path).resolve()
            return _with_slash(path.as_uri())

        scheme = urlparse(value).scheme
        if scheme:
            if scheme not in SUPPORTED_SCHEMES:
                raise ChannelResolutionFailed(
                    f"Unsupported channel URL scheme '{scheme}'.",
                    hint=f"Use one of: {', '.join(SUPPORTED_SCHEMES)}.",
                    context={"channel": value},
                )
            return _with_slash(value)

        if not _CHANNEL_NAME.fullmatch(value):
            raise ChannelResolutionFailed(
                f"'{value}' is not a valid channel name.",
                context={"channel": value},
            )
        return _with_slash(urljoin(_with_slash(self.channel_alias), value))

    def canonical_name(self, channel: str) -> str:
        """Return the short name for channels under the alias, else the URL."""
        url = self.resolve(channel)
        alias = _with_slash(self.channel_alias)
        if url.startswith(alias):
            return url[len(alias) :].rstrip("/")
        return url.rstrip("/")


def resolve_channels(channels: Iterable[str], config: ChannelConfig) -> tuple[str, ...]:
    resolved: list[str] = []
    for channel in channels:
        url = config.resolve(channel)
        if url not in resolved:
            resolved.append(url)
    if not resolved:
        raise ChannelResolutionFailed(
            "No channels are configured.",
            hint="Declare channels in the manifest workspace or pass channel base URLs.",
        )
    return tuple(resolved)


def _looks_like_path(value: str) -> bool:
    if value.startswith(("/", "./", "../", "~", ".\\", "..\\")) or value in (".", ".."):
        return True
    return bool(PureWindowsPath(value).drive)


def _with_slash(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"


__all__ = [
    "DEFAULT_CHANNEL_ALIAS",
    "ChannelConfig",
    "resolve_channels",
]
