#!/usr/bin/env python3
"""
Provisioning settings.

Resolution order (later wins):
1. Built-in defaults from config_constants
2. Optional TOML settings file (flat keys named like the dataclass fields)
3. Environment variables (BASE_DIR, IMAGE_NAME, DOCKERFILE_BASE, ...)
4. Command-line overrides

Derived paths (data dir, model dir, config file) always follow base_dir.
"""

from __future__ import annotations

import os
import shutil
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from .config_constants import (
    CONFIG_FILENAME,
    DATA_SUBDIR,
    DEFAULT_BASE_DIR,
    DEFAULT_BUILDER_NAME,
    DEFAULT_COMPOSE_RELPATH,
    DEFAULT_DOCKERFILE,
    DEFAULT_IMAGE_NAME,
    DEFAULT_PIP_TRUSTED_HOST,
    DEFAULT_PLATFORM,
    MODEL_FILENAME,
    MODEL_SUBDIR,
    MODEL_URL,
    SERVER_CONTAINER,
)


# Environment variable -> settings field
ENV_VARS = {
    'BASE_DIR': 'base_dir',
    'MODEL_URL': 'model_url',
    'IMAGE_NAME': 'image_name',
    'DOCKERFILE_BASE': 'dockerfile',
    'COMPOSE_FILE': 'compose_file',
    'NO_CACHE': 'no_cache',
    'PIP_INDEX_URL': 'pip_index_url',
    'PIP_TRUSTED_HOST': 'pip_trusted_host',
    'BUILDER_NAME': 'builder_name',
    'BUILD_PLATFORM': 'platform',
    'SERVER_CONTAINER': 'container_name',
    'DOCKER_SUDO': 'use_sudo',
}

PATH_FIELDS = {'base_dir', 'compose_file', 'build_context'}
BOOL_FIELDS = {'no_cache', 'use_sudo'}


def _default_use_sudo() -> bool:
    if not hasattr(os, 'geteuid') or os.geteuid() == 0:
        return False
    return shutil.which('sudo') is not None


def _parse_env_bool(name: str, raw: str) -> bool:
    # NO_CACHE only ever meant "1"; anything else keeps the cache
    if name == 'NO_CACHE':
        return raw == '1'
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class ProvisionSettings:
    """Resolved configuration for one provisioning run."""
    base_dir: Path
    compose_file: Path
    build_context: Path
    model_url: str = MODEL_URL
    image_name: str = DEFAULT_IMAGE_NAME
    dockerfile: str = DEFAULT_DOCKERFILE
    no_cache: bool = False
    pip_index_url: str = ''
    pip_trusted_host: str = DEFAULT_PIP_TRUSTED_HOST
    builder_name: str = DEFAULT_BUILDER_NAME
    platform: str = DEFAULT_PLATFORM
    container_name: str = SERVER_CONTAINER
    use_sudo: bool = False

    @property
    def data_dir(self) -> Path:
        return self.base_dir / DATA_SUBDIR

    @property
    def model_dir(self) -> Path:
        return self.base_dir / MODEL_SUBDIR

    @property
    def model_path(self) -> Path:
        return self.model_dir / MODEL_FILENAME

    @property
    def config_file(self) -> Path:
        return self.data_dir / CONFIG_FILENAME

    @classmethod
    def from_sources(
        cls,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        settings_file: Optional[Path] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> 'ProvisionSettings':
        """
        Build settings from defaults, TOML file, environment and overrides.

        Empty environment values count as unset, except PIP_INDEX_URL where
        empty already means "no mirror".
        """
        env = os.environ if env is None else env
        cwd = Path.cwd() if cwd is None else Path(cwd)

        values: dict[str, Any] = {
            'base_dir': DEFAULT_BASE_DIR,
            'compose_file': cwd / DEFAULT_COMPOSE_RELPATH,
            'build_context': cwd,
            'use_sudo': _default_use_sudo(),
        }

        if settings_file is not None:
            values.update(load_settings_file(settings_file))

        for env_name, field_name in ENV_VARS.items():
            raw = env.get(env_name)
            if raw is None or (raw == '' and env_name != 'PIP_INDEX_URL'):
                continue
            if field_name in BOOL_FIELDS:
                values[field_name] = _parse_env_bool(env_name, raw)
            else:
                values[field_name] = raw

        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value

        for key in PATH_FIELDS:
            values[key] = Path(values[key])

        return cls(**values)

    def to_dict(self) -> dict:
        """Return settings (including derived paths) as JSON-friendly values."""
        data = {key: str(value) if isinstance(value, Path) else value
                for key, value in asdict(self).items()}
        data['data_dir'] = str(self.data_dir)
        data['model_dir'] = str(self.model_dir)
        data['model_path'] = str(self.model_path)
        data['config_file'] = str(self.config_file)
        return data


def load_settings_file(path: Path) -> dict:
    """
    Parse a flat TOML settings file.

    Raises:
        FileNotFoundError: if the file does not exist
        ValueError: on TOML syntax errors, unknown keys or wrongly typed values
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    try:
        with open(path, 'rb') as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(
            f"[ERROR] Failed to parse settings from {path}\n"
            f"[ERROR] TOML syntax error: {e}"
        ) from e

    known = {f.name for f in fields(ProvisionSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown settings in {path}: {', '.join(unknown)}")

    for key in BOOL_FIELDS & set(data):
        if not isinstance(data[key], bool):
            raise ValueError(f"Setting '{key}' in {path} must be true or false")

    for key in sorted(set(data) - BOOL_FIELDS):
        if not isinstance(data[key], str):
            raise ValueError(f"Setting '{key}' in {path} must be a string")

    return data
