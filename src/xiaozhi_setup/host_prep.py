#!/usr/bin/env python3
"""
Host preparation: data/model directories and the ASR model download.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

import requests

from .settings import ProvisionSettings


logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024
# (connect, read) seconds; no retries
DOWNLOAD_TIMEOUT = (15, 120)


def ensure_directories(settings: ProvisionSettings) -> list[Path]:
    """
    Create the data and model directories if missing.

    Returns:
        Directories that did not exist before this call
    """
    created = []
    for directory in (settings.data_dir, settings.model_dir):
        if directory.exists() and not directory.is_dir():
            raise NotADirectoryError(f"Path exists and is not a directory: {directory}")
        if not directory.exists():
            created.append(directory)
        directory.mkdir(parents=True, exist_ok=True)

    for directory in created:
        logger.info(f"  Created: {directory}")
    return created


def ensure_model(settings: ProvisionSettings, session: Optional[requests.Session] = None) -> bool:
    """
    Download the model file unless it already exists.

    The response body is streamed into a temporary file in the model
    directory and renamed over the target only after the transfer finished,
    so an interrupted download never leaves a truncated model.pt behind.

    Returns:
        True if the model was downloaded, False if it was already present
    """
    model_path = settings.model_path
    if model_path.exists():
        print(f"✅ Model already present: {model_path}", flush=True)
        return False

    model_path.parent.mkdir(parents=True, exist_ok=True)
    print(f"[INFO] Downloading model: {settings.model_url}", flush=True)

    owns_session = session is None
    if owns_session:
        session = requests.Session()

    fd, tmp_name = tempfile.mkstemp(prefix=f".{model_path.name}.", suffix='.part', dir=model_path.parent)
    try:
        written = 0
        with os.fdopen(fd, 'wb') as out:
            with session.get(settings.model_url, stream=True, timeout=DOWNLOAD_TIMEOUT, allow_redirects=True) as resp:
                resp.raise_for_status()
                # Content-Length counts encoded bytes; iter_content yields decoded ones
                if resp.headers.get('Content-Encoding'):
                    total = 0
                else:
                    total = int(resp.headers.get('Content-Length') or 0)
                for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if not chunk:
                        continue
                    out.write(chunk)
                    written += len(chunk)
                    if total:
                        logger.debug(f"  {written}/{total} bytes")

        if total and written != total:
            raise IOError(f"Incomplete download: got {written} of {total} bytes from {settings.model_url}")

        os.replace(tmp_name, model_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    finally:
        if owns_session:
            session.close()

    print(f"✅ Model downloaded: {model_path} ({written} bytes)", flush=True)
    return True


def primary_ip(default: str = '127.0.0.1') -> str:
    """Get the first address reported by 'hostname -I'."""
    try:
        result = subprocess.run(['hostname', '-I'], capture_output=True, text=True)
    except OSError:
        return default
    ips = result.stdout.strip().split() if result.returncode == 0 else []
    return ips[0] if ips else default
