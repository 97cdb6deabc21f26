"""Caido API のアーキテクチャ名を Debian のアーキテクチャ名に変換する."""

from __future__ import annotations

from typing import Literal

from caido_apt_sync.exceptions import UnsupportedArchitectureError

DebianArch = Literal["amd64", "arm64"]

_ARCH_MAP: dict[str, DebianArch] = {
    "x86_64": "amd64",
    "aarch64": "arm64",
}

SUPPORTED_ARCHITECTURES = frozenset(_ARCH_MAP)


def map_architecture(api_arch: str) -> DebianArch:
    """上流のアーキテクチャ名を Debian 形式に変換する.

    Args:
        api_arch: Caido API の arch 値（例: "x86_64"）

    Returns:
        Debian のアーキテクチャ名（"amd64" / "arm64"）

    Raises:
        UnsupportedArchitectureError: 未知のアーキテクチャの場合
    """
    try:
        return _ARCH_MAP[api_arch]
    except KeyError:
        raise UnsupportedArchitectureError(api_arch) from None
