"""External aptify invocation.

aptify is treated as a black box: the version check and the build both go
through one ``CommandRunner`` that inherits stdin/stdout/stderr and only
reports the exit code, so tests can swap in a fake without a real binary.
"""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from loguru import logger

from caido_apt_sync.exceptions import BuildError, ToolingError

CommandRunner = Callable[[Sequence[str], Path, float | None], Awaitable[int]]

APTIFY_INSTALL_HINT = (
    "Install it from https://github.com/dpeckett/aptify/releases "
    "(e.g. sudo apt install ./aptify_<version>_amd64.deb) and make sure it is on PATH, "
    "or point --aptify / APTIFY_BIN at the executable."
)
VERSION_CHECK_TIMEOUT = 60.0


def _kill_spawned(spawn: asyncio.Future) -> None:
    if spawn.cancelled() or spawn.exception() is not None:
        return
    proc = spawn.result()
    if proc.returncode is None:
        logger.debug(f"[EXEC] Killing process {proc.pid} started during cancellation")
        proc.kill()


async def run_command(args: Sequence[str], cwd: Path, timeout: float | None = None) -> int:
    """Run a command with inherited standard streams and return its exit code.

    Raises:
        OSError: the executable could not be started (e.g. not on PATH)
        TimeoutError: the command did not finish within ``timeout`` seconds
    """
    logger.info(f"[EXEC] Running: {shlex.join(args)}")
    spawn = asyncio.ensure_future(asyncio.create_subprocess_exec(*args, cwd=cwd))
    try:
        proc = await asyncio.shield(spawn)
    except asyncio.CancelledError:
        # The child may still come up after we stop waiting; kill it then.
        spawn.add_done_callback(_kill_spawned)
        raise
    try:
        return await asyncio.wait_for(proc.wait(), timeout)
    except (TimeoutError, asyncio.CancelledError):
        if proc.returncode is None:
            proc.kill()
        raise


class Aptify:
    def __init__(
        self,
        cwd: Path,
        runner: CommandRunner = run_command,
        executable: str = "aptify",
        timeout: float | None = None,
    ) -> None:
        self.cwd = cwd
        self.runner = runner
        self.executable = executable
        self.timeout = timeout

    def _display_path(self, path: Path) -> str:
        """Relative to cwd when the path lives under it, absolute otherwise."""
        path = path if path.is_absolute() else self.cwd / path
        try:
            return path.resolve().relative_to(self.cwd.resolve()).as_posix()
        except ValueError:
            return str(path.resolve())

    async def check_installed(self) -> None:
        """``aptify --version`` で実行可能か確認する.

        Raises:
            ToolingError: aptify が見つからない、または異常終了した場合
        """
        logger.info("[Tooling] Validating dependencies...")
        command = [self.executable, "--version"]
        try:
            returncode = await self.runner(command, self.cwd, VERSION_CHECK_TIMEOUT)
        except OSError as e:
            raise ToolingError(f"aptify is not installed or not in PATH ({e}). {APTIFY_INSTALL_HINT}") from e
        except TimeoutError as e:
            raise ToolingError(
                f"'{shlex.join(command)}' did not finish within {VERSION_CHECK_TIMEOUT:.0f}s. {APTIFY_INSTALL_HINT}"
            ) from e
        if returncode != 0:
            raise ToolingError(
                f"'{shlex.join(command)}' exited with code {returncode}. {APTIFY_INSTALL_HINT}"
            )
        logger.info("[Tooling] aptify is available")

    def build_command(self, config_path: Path, repository_dir: Path) -> list[str]:
        return [
            self.executable,
            "build",
            "--config",
            self._display_path(config_path),
            "--repository-dir",
            self._display_path(repository_dir),
        ]

    async def build(self, config_path: Path, repository_dir: Path) -> None:
        """aptify build でリポジトリメタデータを生成する.

        Raises:
            BuildError: 非0終了、起動失敗、タイムアウトの場合
        """
        command = self.build_command(config_path, repository_dir)

        logger.info(f"[Build] Ensuring repository directory '{repository_dir}' exists...")
        target_dir = repository_dir if repository_dir.is_absolute() else self.cwd / repository_dir
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BuildError(command, None, f"cannot create {target_dir}: {e}") from e

        logger.info("[Build] Building repository metadata...")
        try:
            returncode = await self.runner(command, self.cwd, self.timeout)
        except OSError as e:
            raise BuildError(command, None, str(e)) from e
        except TimeoutError as e:
            raise BuildError(command, None, f"timed out after {self.timeout}s") from e
        if returncode != 0:
            raise BuildError(command, returncode)
