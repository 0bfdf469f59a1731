#!/usr/bin/env python3
"""
Manager-API secret capture and .config.yaml patching.

The server reads data/.config.yaml as an override on top of its packaged
config. Only manager-api.url and manager-api.secret are touched; every
other key is read back and written out unchanged.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import yaml

from .config_constants import MANAGER_API_KEY, MANAGER_API_URL


logger = logging.getLogger(__name__)

SECRET_PROMPT = "Please enter server.secret (leave blank to skip): "


def prompt_for_secret(input_fn: Callable[[str], str] = input) -> str:
    """Read the secret from stdin; EOF or Ctrl-C count as a blank answer."""
    try:
        answer = input_fn(SECRET_PROMPT)
    except (EOFError, KeyboardInterrupt):
        print("", flush=True)
        return ""
    return (answer or "").strip()


def set_nested_value(config: dict, dotted_path: str, value: Any) -> None:
    """Set a nested dict value using a dotted path."""
    keys = dotted_path.split('.')
    cursor = config
    for key in keys[:-1]:
        if key not in cursor or not isinstance(cursor[key], dict):
            cursor[key] = {}
        cursor = cursor[key]
    cursor[keys[-1]] = value


def load_yaml_config(config_path: Path) -> dict:
    """
    Load a YAML mapping; a missing or empty file yields an empty dict.

    Raises:
        ValueError: if the file is not valid YAML or its root is not a mapping
    """
    if not config_path.exists():
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML config {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a mapping at the top of {config_path}, found {type(data).__name__}"
        )
    return data


def apply_manager_api_secret(config_path: Path, secret: str, url: str = MANAGER_API_URL) -> bool:
    """
    Write manager-api.url and manager-api.secret into the YAML config.

    A blank secret leaves the file untouched.

    Returns:
        True if the file was written
    """
    if not secret:
        logger.debug("No secret supplied; config left unchanged")
        return False

    config_path = Path(config_path)
    config = load_yaml_config(config_path)

    set_nested_value(config, f'{MANAGER_API_KEY}.url', url)
    set_nested_value(config, f'{MANAGER_API_KEY}.secret', secret)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(config, f, allow_unicode=True)

    logger.info(f"Wrote {MANAGER_API_KEY} settings to {config_path}")
    return True
