"""Caido APT repository sync: discover, download, rewrite aptify.yml, build."""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

import httpx
from loguru import logger

from caido_apt_sync.aptify import Aptify, CommandRunner, run_command
from caido_apt_sync.aptify_config import (
    load_aptify_config,
    relative_package_paths,
    rewrite_packages,
    save_aptify_config,
)
from caido_apt_sync.discovery import CAIDO_API_URL, get_latest_packages
from caido_apt_sync.exceptions import AllDownloadsFailedError, ConfigError, SyncError
from caido_apt_sync.fetcher import download_packages
from caido_apt_sync.models import StagedArtifact
from caido_apt_sync.staging import StagingArea

APTIFY_CONFIG_PATH = "aptify.yml"
DOWNLOAD_DIR = ".packages"
REPO_DIR = "repo"
DEFAULT_HTTP_TIMEOUT = 300.0
USER_AGENT = "caido-apt-sync/0.1.0"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class Stage(Enum):
    IDLE = "idle"
    VALIDATING_TOOLING = "validating tooling"
    LOADING_CONFIG = "loading config"
    DISCOVERING = "discovering"
    PREPARING_STAGING = "preparing staging"
    DOWNLOADING = "downloading"
    REWRITING_CONFIG = "rewriting config"
    SAVING_CONFIG = "saving config"
    BUILDING = "building"
    CLEANUP = "cleanup"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncSettings:
    work_dir: Path
    config_path: Path
    download_dir: Path
    repository_dir: Path
    api_url: str = CAIDO_API_URL
    aptify_bin: str = "aptify"
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    command_timeout: float | None = None

    def __post_init__(self) -> None:
        # The staging directory is deleted wholesale, so it must never contain
        # the checkout, the config document or the published repository.
        download_dir = Path(self.download_dir).resolve()
        protected = {
            "work directory": self.work_dir,
            "aptify config": self.config_path,
            "repository directory": self.repository_dir,
        }
        for label, path in protected.items():
            path = Path(path).resolve()
            if path == download_dir or download_dir in path.parents:
                raise ConfigError(
                    self.download_dir,
                    f"Download directory must not contain the {label} ({path})",
                )

    @classmethod
    def from_work_dir(cls, work_dir: Path, **overrides) -> SyncSettings:
        """work_dir 配下の既定パス（aptify.yml / .packages / repo）で設定を作る."""
        work_dir = Path(work_dir).resolve()
        paths = {
            "config_path": work_dir / APTIFY_CONFIG_PATH,
            "download_dir": work_dir / DOWNLOAD_DIR,
            "repository_dir": work_dir / REPO_DIR,
        }
        paths.update(overrides)
        return cls(work_dir=work_dir, **paths)


@dataclass(frozen=True)
class SyncResult:
    version: str
    attempted: int
    artifacts: list[StagedArtifact] = field(default_factory=list)
    duration: float = 0.0


class SyncPipeline:
    """One sync run.

    Stages run strictly in order; only DOWNLOADING fans out. The staging
    directory is owned by a ``StagingArea`` wrapped around every stage, so it
    is removed whether the run succeeds, raises, or is cancelled by
    ``interrupt()``.
    """

    def __init__(
        self,
        settings: SyncSettings,
        runner: CommandRunner = run_command,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.aptify = Aptify(
            cwd=settings.work_dir,
            runner=runner,
            executable=settings.aptify_bin,
            timeout=settings.command_timeout,
        )
        self.transport = transport
        self.stage = Stage.IDLE
        self.failed_stage: Stage | None = None
        self.received_signal: int | None = None
        self._task: asyncio.Task | None = None

    def _enter(self, stage: Stage) -> None:
        self.stage = stage
        logger.debug(f"[Pipeline] Stage: {stage.value}")

    def interrupt(self, signum: int) -> None:
        """Record the signal and cancel the running pipeline task.

        Repeated signals are ignored; cleanup is already under way.
        """
        if self.received_signal is not None:
            return
        self.received_signal = signum
        logger.warning(f"Received {signal.Signals(signum).name}, cleaning up and exiting...")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(self) -> SyncResult:
        self._task = asyncio.current_task()
        started = time.monotonic()
        logger.info("Starting Caido APT repository update process...")

        staging = StagingArea(self.settings.download_dir)
        try:
            with staging:
                try:
                    result = await self._run_stages(staging)
                except BaseException:
                    self.failed_stage = self.stage
                    raise
                finally:
                    self._enter(Stage.CLEANUP)
        except BaseException:
            self._enter(Stage.FAILED)
            raise

        self._enter(Stage.SUCCEEDED)
        return replace(result, duration=time.monotonic() - started)

    async def _run_stages(self, staging: StagingArea) -> SyncResult:
        settings = self.settings

        self._enter(Stage.VALIDATING_TOOLING)
        await self.aptify.check_installed()

        self._enter(Stage.LOADING_CONFIG)
        config = load_aptify_config(settings.config_path)

        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(settings.http_timeout),
            headers={"User-Agent": USER_AGENT},
            transport=self.transport,
        ) as client:
            self._enter(Stage.DISCOVERING)
            release, assets = await get_latest_packages(client, settings.api_url)
            logger.info(f"Found {len(assets)} packages to download")

            self._enter(Stage.PREPARING_STAGING)
            try:
                download_dir = staging.prepare()
            except OSError as e:
                raise SyncError(f"Failed to prepare download directory {staging.path}: {e}") from e

            self._enter(Stage.DOWNLOADING)
            report = await download_packages(client, assets, download_dir)

        if report.succeeded == 0:
            raise AllDownloadsFailedError(report.attempted)
        if report.is_partial:
            logger.warning(
                f"Some package downloads failed. Proceeding with {report.succeeded} packages."
            )
        logger.info(f"Successfully downloaded {report.succeeded}/{report.attempted} packages")

        self._enter(Stage.REWRITING_CONFIG)
        rewrite_packages(config, relative_package_paths(report.artifacts, settings.work_dir))

        self._enter(Stage.SAVING_CONFIG)
        save_aptify_config(config, settings.config_path)

        self._enter(Stage.BUILDING)
        await self.aptify.build(settings.config_path, settings.repository_dir)

        return SyncResult(version=release.version, attempted=report.attempted, artifacts=report.artifacts)


def _stage_label(pipeline: SyncPipeline) -> str:
    stage = pipeline.failed_stage or pipeline.stage
    return stage.value


async def _run_with_signal_handlers(pipeline: SyncPipeline) -> SyncResult:
    loop = asyncio.get_running_loop()
    installed: list[int] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, pipeline.interrupt, signum)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows event loops / non-main threads
            logger.debug(f"Signal handler for {signum.name} not available")
            continue
        installed.append(signum)
    try:
        return await pipeline.run()
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def run_sync(
    settings: SyncSettings,
    runner: CommandRunner = run_command,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Run one sync and map its outcome to a process exit code.

    Returns:
        0 on success, 1 on any fatal error, 128 + signal number when
        interrupted by SIGINT/SIGTERM. The staging directory is already gone
        when this returns.
    """
    pipeline = SyncPipeline(settings, runner=runner, transport=transport)
    try:
        result = asyncio.run(_run_with_signal_handlers(pipeline))
    except asyncio.CancelledError:
        if pipeline.received_signal is None:
            raise
        logger.warning(f"Interrupted during {_stage_label(pipeline)}; exiting.")
        return 128 + pipeline.received_signal
    except SyncError as e:
        logger.error(f"[FATAL] Repository update failed while {_stage_label(pipeline)}: {e}")
        return EXIT_FAILURE
    except Exception:
        logger.exception(
            "[FATAL] An unhandled error occurred during the repository update process"
        )
        return EXIT_FAILURE

    logger.success(
        f"[SUCCESS] Caido APT repository updated to {result.version} "
        f"({len(result.artifacts)}/{result.attempted} packages) in {result.duration:.2f}s"
    )
    return EXIT_SUCCESS


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def _resolve(work_dir: Path, path: Path | None, default: str) -> Path:
    path = Path(default) if path is None else path
    return path if path.is_absolute() else (work_dir / path).resolve()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Update the Caido APT repository from the latest release")
    p.add_argument(
        "--work-dir",
        type=Path,
        default=Path.cwd(),
        help="repository checkout containing aptify.yml (default: current directory)",
    )
    p.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"aptify configuration (default: --work-dir/{APTIFY_CONFIG_PATH})",
    )
    p.add_argument(
        "--download-dir",
        type=Path,
        default=None,
        help=f"temporary package directory, removed after the run (default: --work-dir/{DOWNLOAD_DIR})",
    )
    p.add_argument(
        "--repository-dir",
        type=Path,
        default=None,
        help=f"aptify output directory (default: --work-dir/{REPO_DIR})",
    )
    p.add_argument(
        "--api-url",
        default=os.environ.get("CAIDO_API_URL", CAIDO_API_URL),
        help="Caido releases API endpoint (env: CAIDO_API_URL)",
    )
    p.add_argument(
        "--aptify",
        dest="aptify_bin",
        default=os.environ.get("APTIFY_BIN", "aptify"),
        help="aptify executable (env: APTIFY_BIN)",
    )
    p.add_argument(
        "--http-timeout",
        type=float,
        default=DEFAULT_HTTP_TIMEOUT,
        help="timeout in seconds for each HTTP request",
    )
    p.add_argument(
        "--command-timeout",
        type=float,
        default=None,
        help="timeout in seconds for aptify build (default: none)",
    )
    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="warnings and errors only")

    args = p.parse_args(argv)
    _configure_logging("DEBUG" if args.verbose else "WARNING" if args.quiet else "INFO")

    work_dir = args.work_dir.resolve()
    try:
        settings = SyncSettings(
            work_dir=work_dir,
            config_path=_resolve(work_dir, args.config, APTIFY_CONFIG_PATH),
            download_dir=_resolve(work_dir, args.download_dir, DOWNLOAD_DIR),
            repository_dir=_resolve(work_dir, args.repository_dir, REPO_DIR),
            api_url=args.api_url,
            aptify_bin=args.aptify_bin,
            http_timeout=args.http_timeout,
            command_timeout=args.command_timeout,
        )
    except ConfigError as e:
        p.error(f"--download-dir: {e}")
    return run_sync(settings)


if __name__ == "__main__":
    sys.exit(main())
