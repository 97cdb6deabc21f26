"""パッケージの並列ダウンロード."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles
import httpx
from loguru import logger

from caido_apt_sync.exceptions import DownloadError
from caido_apt_sync.models import ReleaseAsset, StagedArtifact


@dataclass
class DownloadReport:
    attempted: int
    artifacts: list[StagedArtifact] = field(default_factory=list)
    failures: list[DownloadError] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.artifacts)

    @property
    def is_partial(self) -> bool:
        return 0 < self.succeeded < self.attempted


def _partial_path(dest_dir: Path, filename: str) -> Path:
    return dest_dir / f".{filename}.part"


async def download_package(
    client: httpx.AsyncClient, asset: ReleaseAsset, dest_dir: Path
) -> StagedArtifact:
    """パッケージを1件ダウンロードする.

    一時ファイル（.<filename>.part）に書き込み、完了後に最終名へ rename する。
    失敗時は一時ファイルを削除するため、書きかけのファイルが最終名で残ることはない。

    Args:
        client: HTTPクライアント
        asset: ダウンロード対象
        dest_dir: 保存先ディレクトリ

    Returns:
        保存済みパッケージ

    Raises:
        DownloadError: HTTPエラー、通信エラー、書き込みエラーの場合
    """
    destination = (dest_dir / asset.filename).resolve()
    tmp_path = _partial_path(destination.parent, asset.filename)

    logger.info(f"[Download] Downloading {asset.filename}...")
    try:
        async with client.stream("GET", asset.url) as response:
            if not response.is_success:
                raise DownloadError(asset, f"HTTP error! status: {response.status_code}")
            async with aiofiles.open(tmp_path, "wb") as f:
                async for chunk in response.aiter_bytes():
                    await f.write(chunk)
        tmp_path.replace(destination)
    except (httpx.HTTPError, OSError) as e:
        tmp_path.unlink(missing_ok=True)
        raise DownloadError(asset, str(e) or type(e).__name__) from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info(f"[Download] Successfully saved to {destination}")
    return StagedArtifact(local_path=destination, asset=asset)


async def download_packages(
    client: httpx.AsyncClient, assets: list[ReleaseAsset], dest_dir: Path
) -> DownloadReport:
    """全パッケージを同時にダウンロードし、全件の完了を待つ.

    1件の失敗で他のダウンロードは中断されない。成功分は assets と同じ順序で返す。

    Args:
        client: HTTPクライアント
        assets: ダウンロード対象のリスト
        dest_dir: 保存先ディレクトリ（作成済みかつ空であること）

    Returns:
        ダウンロード結果

    Raises:
        FileNotFoundError: 保存先ディレクトリが存在しない場合
        FileExistsError: 保存先ディレクトリが空でない場合
    """
    if not dest_dir.is_dir():
        raise FileNotFoundError(f"Download directory not found: {dest_dir}")
    if any(dest_dir.iterdir()):
        raise FileExistsError(f"Download directory is not empty: {dest_dir}")

    logger.info(f"[Download] Starting {len(assets)} concurrent downloads...")
    results = await asyncio.gather(
        *(download_package(client, asset, dest_dir) for asset in assets),
        return_exceptions=True,
    )

    report = DownloadReport(attempted=len(assets))
    for asset, result in zip(assets, results):
        if isinstance(result, StagedArtifact):
            report.artifacts.append(result)
        elif isinstance(result, DownloadError):
            logger.error(f"[Download] {result}")
            report.failures.append(result)
        elif isinstance(result, Exception):
            logger.opt(exception=result).error(f"[Download] Unexpected error for {asset.url}")
            report.failures.append(DownloadError(asset, repr(result)))
        else:
            raise result

    logger.info(f"[Download] Downloaded {report.succeeded}/{report.attempted} packages")
    return report
