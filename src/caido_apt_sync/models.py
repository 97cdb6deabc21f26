"""Release data structures shared by discovery, fetcher and config store."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlsplit

from caido_apt_sync.architecture import DebianArch, map_architecture

_LINK_FIELDS = ("display", "platform", "kind", "link", "os", "arch", "format", "hash")
_RELEASE_FIELDS = ("id", "version", "released_at")


def _require_str(data: dict, key: str, where: str) -> str:
    if key not in data:
        raise ValueError(f"{where}: missing field '{key}'")
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"{where}: field '{key}' must be a string, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class ReleaseLink:
    display: str
    platform: str
    kind: str
    link: str
    os: str
    arch: str
    format: str
    hash: str

    @classmethod
    def from_dict(cls, data: object, index: int = 0) -> ReleaseLink:
        where = f"links[{index}]"
        if not isinstance(data, dict):
            raise ValueError(f"{where}: expected an object, got {type(data).__name__}")
        return cls(**{key: _require_str(data, key, where) for key in _LINK_FIELDS})


@dataclass(frozen=True)
class Release:
    id: str
    version: str
    released_at: str
    links: tuple[ReleaseLink, ...]

    @classmethod
    def from_dict(cls, data: object) -> Release:
        """Parse the body of ``GET /releases/latest``.

        Raises:
            ValueError: when the document does not have the expected shape
        """
        if not isinstance(data, dict):
            raise ValueError(f"release: expected an object, got {type(data).__name__}")
        fields = {key: _require_str(data, key, "release") for key in _RELEASE_FIELDS}
        links = data.get("links")
        if not isinstance(links, list):
            raise ValueError("release: field 'links' must be a list")
        return cls(
            **fields,
            links=tuple(ReleaseLink.from_dict(link, i) for i, link in enumerate(links)),
        )


def filename_from_url(url: str) -> str:
    """URL の最終パス要素からファイル名を得る（クエリ・フラグメントは無視）."""
    name = PurePosixPath(unquote(urlsplit(url).path)).name
    if name in ("", ".", ".."):
        raise ValueError(f"Cannot derive a file name from URL: {url}")
    return name


@dataclass(frozen=True)
class ReleaseAsset:
    url: str
    arch: DebianArch
    filename: str

    @classmethod
    def from_link(cls, link: ReleaseLink) -> ReleaseAsset:
        return cls(
            url=link.link,
            arch=map_architecture(link.arch),
            filename=filename_from_url(link.link),
        )


@dataclass(frozen=True)
class StagedArtifact:
    local_path: Path
    asset: ReleaseAsset
