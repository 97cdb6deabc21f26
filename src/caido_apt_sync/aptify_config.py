"""aptify.yml の読み込み・書き換え・保存."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

import yaml
from loguru import logger

from caido_apt_sync.exceptions import ConfigError
from caido_apt_sync.models import StagedArtifact


class _NoAliasDumper(yaml.SafeDumper):
    """同一オブジェクトを参照していても &anchor / *alias を出力しない Dumper."""

    def ignore_aliases(self, data: object) -> bool:
        return True


def _validate(config: object, path: Path) -> dict:
    if not isinstance(config, dict):
        raise ConfigError(path, "Invalid aptify.yml: top level must be a mapping.")
    releases = config.get("releases")
    if releases is None:
        raise ConfigError(path, "Invalid aptify.yml: missing required 'releases' field.")
    if not isinstance(releases, list):
        raise ConfigError(path, "Invalid aptify.yml: 'releases' must be a list.")

    for i, release in enumerate(releases):
        if not isinstance(release, dict):
            raise ConfigError(path, f"Invalid aptify.yml: releases[{i}] must be a mapping.")
        components = release.get("components")
        if not isinstance(components, list) or not all(isinstance(c, dict) for c in components):
            raise ConfigError(
                path,
                f"Invalid aptify.yml: releases[{i}] ('{release.get('name')}') "
                "must have a 'components' list of mappings.",
            )
    return config


def load_aptify_config(path: Path) -> dict:
    """aptify.yml を読み込み、releases セクションを検証する.

    Args:
        path: aptify.yml のパス

    Returns:
        設定の辞書（キー順は元ファイルのまま）

    Raises:
        ConfigError: ファイルが存在しない、YAMLとして不正、releases が欠落・不正な場合
    """
    try:
        with open(path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(path, "Configuration file not found.") from e
    except OSError as e:
        raise ConfigError(path, f"Failed to read configuration: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(path, f"Invalid YAML: {e}") from e

    config = _validate(config, path)
    logger.info(f"[Config] Loaded configuration for {len(config['releases'])} releases from {path}")
    return config


def dump_aptify_config(config: dict) -> str:
    """設定を決定的な YAML 文字列に変換する（キー順維持、リストの折り返しなし）."""
    return yaml.dump(
        config,
        Dumper=_NoAliasDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        indent=2,
        width=float("inf"),
    )


def save_aptify_config(config: dict, path: Path) -> None:
    """設定を aptify.yml に書き戻す.

    同じディレクトリの一時ファイルに書いてから置き換えるため、
    途中で失敗しても元のファイルは壊れない。

    Args:
        config: 設定の辞書
        path: aptify.yml のパス

    Raises:
        ConfigError: 書き込みに失敗した場合
    """
    text = dump_aptify_config(config)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        if path.exists():
            os.chmod(tmp_name, path.stat().st_mode & 0o777)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
        raise ConfigError(path, f"Failed to save configuration: {e}") from e

    logger.info(f"[Config] Successfully updated {path}")


def relative_package_paths(artifacts: Iterable[StagedArtifact], root_dir: Path) -> list[str]:
    """保存済みパッケージを root_dir からの相対パス（POSIX 区切り）に変換する."""
    root = root_dir.resolve()
    return [Path(os.path.relpath(a.local_path, root)).as_posix() for a in artifacts]


def rewrite_packages(config: dict, package_paths: list[str]) -> dict:
    """全 release の全 component の packages を package_paths で置き換える.

    マージではなく完全な置き換え。component ごとの振り分けは行わない。

    Args:
        config: load_aptify_config で読み込んだ設定
        package_paths: 新しいパッケージの相対パス（Fetcher の順序）

    Returns:
        同じ config（インプレースで更新済み）
    """
    for release in config["releases"]:
        for component in release["components"]:
            component["packages"] = list(package_paths)
            logger.info(
                f"[Config] Updated package list for release '{release.get('name')}' "
                f"component '{component.get('name')}'"
            )
    return config
