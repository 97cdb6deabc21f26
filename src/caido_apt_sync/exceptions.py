"""Sync pipeline exceptions.

パイプラインで使用する例外クラスを定義します。
DownloadError 以外はすべてパイプライン全体を中断させる致命的エラーです。
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from caido_apt_sync.models import ReleaseAsset


class SyncError(Exception):
    """パイプラインを中断させるエラーの基底クラス."""


class ToolingError(SyncError):
    """外部ビルダー（aptify）が見つからない、または正常に動作しない."""


class DiscoveryError(SyncError):
    """リリース情報の取得・解析に失敗した、または対象パッケージが0件."""


class UnsupportedArchitectureError(SyncError, ValueError):
    """上流APIが未知のアーキテクチャを返した.

    上流の契約が変わったことを意味するため、リトライせずに中断します。

    Attributes:
        arch: 変換できなかったアーキテクチャ名
    """

    def __init__(self, arch: str) -> None:
        self.arch = arch
        super().__init__(f"Unsupported architecture from Caido API: {arch!r}")


class DownloadError(SyncError):
    """単一パッケージのダウンロード失敗.

    Fetcher 内で集約され、単独ではパイプラインを中断しません。

    Attributes:
        asset: 失敗したダウンロード対象
        reason: 失敗理由
    """

    def __init__(self, asset: ReleaseAsset, reason: str) -> None:
        self.asset = asset
        self.reason = reason
        super().__init__(f"Failed to download {asset.url}: {reason}")


class AllDownloadsFailedError(SyncError):
    """全パッケージのダウンロードに失敗した.

    Attributes:
        attempted: 試行したダウンロード数
    """

    def __init__(self, attempted: int) -> None:
        self.attempted = attempted
        super().__init__(
            f"All {attempted} package downloads failed. Cannot update repository."
        )


class ConfigError(SyncError):
    """aptify.yml の読み込み・検証・保存に失敗した.

    Attributes:
        path: 対象の設定ファイルパス
    """

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


class BuildError(SyncError):
    """aptify build が失敗した.

    Attributes:
        returncode: 終了コード（起動できなかった場合は None）
        command: 実行したコマンドライン
    """

    def __init__(self, command: Sequence[str], returncode: int | None, message: str | None = None) -> None:
        self.command = list(command)
        self.returncode = returncode
        command_line = " ".join(self.command)
        if message is None:
            message = f'Command "{command_line}" failed with exit code {returncode}.'
        else:
            message = f'Command "{command_line}" failed: {message}'
        super().__init__(message)
