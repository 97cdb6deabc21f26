from __future__ import annotations

from pathlib import Path

import pytest
from loguru import logger

from _testutil import APTIFY_YML


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    root = tmp_path / "distribution"
    root.mkdir()
    (root / "aptify.yml").write_text(APTIFY_YML, encoding="utf-8")
    return root


@pytest.fixture
def log_messages() -> list[str]:
    messages: list[str] = []

    def sink(message) -> None:
        record = message.record
        messages.append(f"{record['level'].name} {record['message']}")

    handler_id = logger.add(sink, level="DEBUG")
    yield messages
    logger.remove(handler_id)
