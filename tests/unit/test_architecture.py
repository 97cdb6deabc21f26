from __future__ import annotations

import pytest

from caido_apt_sync.architecture import SUPPORTED_ARCHITECTURES, map_architecture
from caido_apt_sync.exceptions import SyncError, UnsupportedArchitectureError


def test_map_architecture_known_values() -> None:
    assert map_architecture("x86_64") == "amd64"
    assert map_architecture("aarch64") == "arm64"


def test_map_architecture_is_total_on_supported_set() -> None:
    assert {map_architecture(a) for a in SUPPORTED_ARCHITECTURES} == {"amd64", "arm64"}


@pytest.mark.parametrize("arch", ["mips", "armv7", "amd64", "X86_64", ""])
def test_map_architecture_rejects_unknown(arch: str) -> None:
    with pytest.raises(UnsupportedArchitectureError) as exc_info:
        map_architecture(arch)
    assert exc_info.value.arch == arch
    assert repr(arch) in str(exc_info.value)


def test_unsupported_architecture_is_fatal_sync_error() -> None:
    with pytest.raises(SyncError):
        map_architecture("mips")
    with pytest.raises(ValueError):
        map_architecture("mips")
