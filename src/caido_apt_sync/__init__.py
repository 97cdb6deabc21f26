"""caido_apt_sync: Caido APT リポジトリ同期パイプライン.

最新リリースの検出、.deb パッケージの取得、aptify.yml の書き換え、
aptify によるリポジトリ再構築を提供する。
"""

from caido_apt_sync.aptify import Aptify, run_command
from caido_apt_sync.aptify_config import (
    load_aptify_config,
    relative_package_paths,
    rewrite_packages,
    save_aptify_config,
)
from caido_apt_sync.architecture import SUPPORTED_ARCHITECTURES, map_architecture
from caido_apt_sync.discovery import fetch_latest_release, get_latest_packages, select_deb_assets
from caido_apt_sync.fetcher import download_package, download_packages
from caido_apt_sync.pipeline import Stage, SyncPipeline, SyncSettings, run_sync

__version__ = "0.1.0"

__all__ = [
    # architecture
    "SUPPORTED_ARCHITECTURES",
    "map_architecture",
    # discovery
    "fetch_latest_release",
    "select_deb_assets",
    "get_latest_packages",
    # fetcher
    "download_package",
    "download_packages",
    # aptify_config
    "load_aptify_config",
    "save_aptify_config",
    "rewrite_packages",
    "relative_package_paths",
    # aptify
    "Aptify",
    "run_command",
    # pipeline
    "Stage",
    "SyncPipeline",
    "SyncSettings",
    "run_sync",
]
