"""Caido Releases API から最新リリースの .deb パッケージを検出する."""

from __future__ import annotations

import httpx
from loguru import logger

from caido_apt_sync.architecture import SUPPORTED_ARCHITECTURES
from caido_apt_sync.exceptions import DiscoveryError
from caido_apt_sync.models import Release, ReleaseAsset, ReleaseLink

CAIDO_API_URL = "https://api.caido.io/releases/latest"


async def fetch_latest_release(client: httpx.AsyncClient, api_url: str = CAIDO_API_URL) -> Release:
    """最新リリース情報を取得して解析する.

    Args:
        client: HTTPクライアント
        api_url: リリースAPIのURL

    Returns:
        解析済みのリリース情報

    Raises:
        DiscoveryError: 通信失敗、非2xxステータス、JSON/形式不正の場合
    """
    logger.info(f"[Discovery] Fetching latest release information from {api_url}")
    try:
        response = await client.get(api_url, headers={"Accept": "application/json"})
    except httpx.HTTPError as e:
        raise DiscoveryError(f"Caido API request failed: {e}") from e

    if not response.is_success:
        raise DiscoveryError(f"Caido API request failed with status: {response.status_code}")

    try:
        release = Release.from_dict(response.json())
    except ValueError as e:  # includes json.JSONDecodeError
        raise DiscoveryError(f"Malformed release document from {api_url}: {e}") from e

    logger.info(f"[Discovery] Found latest Caido version: {release.version}")
    return release


def _is_eligible(link: ReleaseLink) -> bool:
    return link.format == "deb" and link.os == "linux" and link.arch in SUPPORTED_ARCHITECTURES


def select_deb_assets(release: Release) -> list[ReleaseAsset]:
    """リリースのリンクから Linux 向け .deb パッケージのみを抽出する.

    上流のリンク順を保ったまま、format=deb / os=linux / 対応アーキテクチャの
    リンクだけを ReleaseAsset に変換する。

    Args:
        release: 最新リリース情報

    Returns:
        ダウンロード対象のリスト（1件以上）

    Raises:
        DiscoveryError: 対象パッケージが1件もない場合
    """
    assets: list[ReleaseAsset] = []
    for link in release.links:
        if not _is_eligible(link):
            logger.debug(f"[Discovery] Skipping {link.display} ({link.os}/{link.arch}/{link.format})")
            continue
        try:
            asset = ReleaseAsset.from_link(link)
        except ValueError as e:
            raise DiscoveryError(str(e)) from e
        logger.info(f"[Discovery] Found package: {asset.filename} ({asset.arch})")
        assets.append(asset)

    if not assets:
        raise DiscoveryError(
            f"No .deb packages found in the assets of Caido release {release.version}."
        )
    return assets


async def get_latest_packages(
    client: httpx.AsyncClient, api_url: str = CAIDO_API_URL
) -> tuple[Release, list[ReleaseAsset]]:
    release = await fetch_latest_release(client, api_url)
    return release, select_deb_assets(release)
