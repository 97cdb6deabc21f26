"""Release discovery のテスト."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from _testutil import (
    AMD64_DEB,
    API_URL,
    ARM64_DEB,
    CDN,
    default_release,
    make_link,
    make_release,
    release_transport,
)
from caido_apt_sync.discovery import fetch_latest_release, get_latest_packages, select_deb_assets
from caido_apt_sync.exceptions import DiscoveryError
from caido_apt_sync.models import Release, ReleaseAsset, filename_from_url


def _fetch(transport: httpx.MockTransport) -> Release:
    async def go() -> Release:
        async with httpx.AsyncClient(transport=transport) as client:
            return await fetch_latest_release(client, API_URL)

    return asyncio.run(go())


def _five_links_release() -> Release:
    return Release.from_dict(
        make_release(
            [
                make_link(
                    f"{CDN}/caido-desktop-v1.2.3-linux-x86_64.AppImage", format="AppImage", kind="desktop"
                ),
                make_link(ARM64_DEB, arch="aarch64"),
                make_link(
                    f"{CDN}/caido-cli-v1.2.3-mac-aarch64.zip", os="macos", arch="aarch64", format="zip"
                ),
                make_link(f"{CDN}/caido-cli-v1.2.3-linux-riscv64.deb", arch="riscv64"),
                make_link(AMD64_DEB, arch="x86_64"),
            ]
        )
    )


class TestSelectDebAssets:
    def test_keeps_only_linux_debs_in_upstream_order(self) -> None:
        """5件中、条件を満たす2件だけが元の順序で返ること."""
        assets = select_deb_assets(_five_links_release())

        assert assets == [
            ReleaseAsset(url=ARM64_DEB, arch="arm64", filename="caido-cli-v1.2.3-linux-aarch64.deb"),
            ReleaseAsset(url=AMD64_DEB, arch="amd64", filename="caido-cli-v1.2.3-linux-x86_64.deb"),
        ]

    def test_is_idempotent(self) -> None:
        release = _five_links_release()
        assert select_deb_assets(release) == select_deb_assets(release)

    def test_no_eligible_links_raises(self) -> None:
        """対象が0件の場合は空リストではなくDiscoveryErrorになること."""
        release = Release.from_dict(
            make_release([make_link(f"{CDN}/caido.exe", os="windows", format="exe")])
        )
        with pytest.raises(DiscoveryError, match="No .deb packages"):
            select_deb_assets(release)

    def test_empty_link_list_raises(self) -> None:
        with pytest.raises(DiscoveryError):
            select_deb_assets(Release.from_dict(make_release([])))


class TestFetchLatestRelease:
    def test_parses_release(self) -> None:
        release = _fetch(release_transport())
        assert release.version == "v1.2.3"
        assert len(release.links) == 3
        assert release.links[0].link == AMD64_DEB

    def test_sends_accept_json(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=default_release())

        _fetch(httpx.MockTransport(handler))
        assert seen[0].method == "GET"
        assert seen[0].headers["accept"] == "application/json"

    def test_bad_status_raises(self) -> None:
        with pytest.raises(DiscoveryError, match="status: 503"):
            _fetch(release_transport(status_urls={API_URL: 503}))

    def test_connection_error_raises(self) -> None:
        with pytest.raises(DiscoveryError, match="request failed"):
            _fetch(release_transport(fail_urls=[API_URL]))

    def test_invalid_json_raises(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>oops</html>"))
        with pytest.raises(DiscoveryError, match="Malformed"):
            _fetch(transport)

    @pytest.mark.parametrize(
        "body",
        [
            [],
            {"version": "v1", "links": []},
            {"id": "x", "version": "v1", "released_at": "t", "links": "nope"},
            {"id": "x", "version": "v1", "released_at": "t", "links": [{"link": AMD64_DEB}]},
            {"id": "x", "version": 3, "released_at": "t", "links": []},
        ],
    )
    def test_unexpected_shape_raises(self, body: object) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        with pytest.raises(DiscoveryError, match="Malformed"):
            _fetch(transport)


def test_get_latest_packages_drops_windows_exe() -> None:
    async def go():
        async with httpx.AsyncClient(transport=release_transport()) as client:
            return await get_latest_packages(client, API_URL)

    release, assets = asyncio.run(go())
    assert release.version == "v1.2.3"
    assert [a.arch for a in assets] == ["amd64", "arm64"]


def test_filename_from_url() -> None:
    assert filename_from_url(f"{CDN}/caido-cli.deb") == "caido-cli.deb"
    assert filename_from_url(f"{CDN}/caido%20cli.deb?token=abc#frag") == "caido cli.deb"
    with pytest.raises(ValueError):
        filename_from_url("https://caido.download/")
