"""Download staging directory lifecycle."""

from __future__ import annotations

import shutil
from pathlib import Path

from loguru import logger


class StagingArea:
    """Scoped staging directory.

    ``prepare()`` recreates the directory empty; leaving the ``with`` block by
    any route (return, exception, task cancellation) removes it exactly once.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._cleaned = False

    def __enter__(self) -> StagingArea:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def prepare(self) -> Path:
        logger.info(f"[Staging] Preparing download directory: {self.path}")
        shutil.rmtree(self.path, ignore_errors=True)
        self.path.mkdir(parents=True)
        return self.path

    def cleanup(self) -> None:
        if self._cleaned:
            return
        self._cleaned = True
        logger.info(f"[Cleanup] Cleaning up temporary directory: {self.path}")
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[Cleanup] Failed to clean up temporary directory: {e}")
