#!/usr/bin/env python3
"""
XiaoZhi Jetson setup engine.

Provisioning pipeline for the ESP32 voice-assistant backend on an ARM64
(Jetson) host:

1. Ensure data/model directories
2. Download the SenseVoiceSmall model if missing
3. Check Docker, the daemon and buildx
4. Ensure and select the buildx builder
5. Build the server base image
6. docker compose up
7. Optionally write the manager-api secret and restart the server
8. Print panel and WebSocket endpoints

Every step tolerates an already satisfied precondition, so the pipeline
can be re-run safely.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Callable, Optional

import requests

from . import docker_ops
from .cli_utils import get_cli_version
from .config_constants import (
    ADMIN_PANEL_PORT,
    MANAGER_API_KEY,
    WEBSOCKET_PATH,
    WEBSOCKET_PORT,
)
from .host_prep import ensure_directories, ensure_model, primary_ip
from .secret_config import apply_manager_api_secret, prompt_for_secret
from .settings import ProvisionSettings


# Global logger instance (configured in main)
logger = logging.getLogger(__name__)


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure logging module with specified level.
    """
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR
    }

    level = level_map.get(log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='[%(levelname)s] %(message)s',
        force=True  # Reconfigure if already configured
    )

    logger.setLevel(level)
    logger.debug(f"Logging configured: {log_level.upper()}")


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments for xiaozhi-setup.

    Path and image arguments override the matching environment variables
    (BASE_DIR, IMAGE_NAME, DOCKERFILE_BASE, COMPOSE_FILE, BUILDER_NAME,
    PIP_INDEX_URL, NO_CACHE). Arguments left unset fall back to the
    environment, then to the optional --settings TOML file, then to the
    built-in defaults.
    """
    parser = argparse.ArgumentParser(
        description='Provision a Jetson/ARM64 host for the XiaoZhi ESP32 server',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Full setup from the repository checkout
  %(prog)s

  # Show the docker commands without running them
  %(prog)s --dry-run --print-settings

  # Rebuild from scratch using a PyPI mirror
  %(prog)s --no-cache --pip-index-url https://mirrors.aliyun.com/pypi/simple/

  # Unattended run that writes the manager-api secret
  %(prog)s -y --secret "$SERVER_SECRET"
        '''
    )

    parser.add_argument('--base-dir', dest='base_dir', type=Path, default=None, metavar='PATH',
                        help='Server data root (env: BASE_DIR, default: /main/xiaozhi-server)')
    parser.add_argument('--image', dest='image_name', default=None, metavar='NAME',
                        help='Image tag to build (env: IMAGE_NAME)')
    parser.add_argument('--dockerfile', default=None, metavar='PATH',
                        help='Dockerfile for the base image (env: DOCKERFILE_BASE)')
    parser.add_argument('--compose-file', dest='compose_file', type=Path, default=None, metavar='PATH',
                        help='Compose file to start (env: COMPOSE_FILE)')
    parser.add_argument('--builder', dest='builder_name', default=None, metavar='NAME',
                        help='buildx builder name (env: BUILDER_NAME)')
    parser.add_argument('--platform', default=None, metavar='PLATFORM',
                        help='Target platform (env: BUILD_PLATFORM, default: linux/arm64)')
    parser.add_argument('--pip-index-url', dest='pip_index_url', default=None, metavar='URL',
                        help='PyPI mirror passed as build arg (env: PIP_INDEX_URL)')
    parser.add_argument('--no-cache', dest='no_cache', action='store_const', const=True, default=None,
                        help='Build without cache (env: NO_CACHE=1)')
    parser.add_argument('--settings', type=Path, default=None, metavar='PATH',
                        help='TOML file with settings (lowest precedence after defaults)')

    parser.add_argument('--dry-run', action='store_true',
                        help='Print docker commands and file writes instead of executing them')
    parser.add_argument('--skip-download', action='store_true',
                        help='Do not download the model')
    parser.add_argument('--skip-build', action='store_true',
                        help='Skip builder setup and image build')
    parser.add_argument('--secret', default=None, metavar='SECRET',
                        help='manager-api secret to write (skips the prompt)')
    parser.add_argument('-y', '--yes', action='store_true',
                        help='Non-interactive mode (never prompt for the secret)')
    parser.add_argument('--print-settings', action='store_true',
                        help='Print resolved settings as JSON')
    parser.add_argument('--log-level', default=os.getenv('LOG_LEVEL', 'INFO'),
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], type=str.upper,
                        help='Logging level (env: LOG_LEVEL, default: INFO)')
    parser.add_argument('--version', action='version', version=f'%(prog)s {get_cli_version()}')

    return parser.parse_args(argv)


def settings_from_arguments(args: argparse.Namespace, env: Optional[dict] = None) -> ProvisionSettings:
    overrides = {
        'base_dir': args.base_dir,
        'image_name': args.image_name,
        'dockerfile': args.dockerfile,
        'compose_file': args.compose_file,
        'builder_name': args.builder_name,
        'platform': args.platform,
        'pip_index_url': args.pip_index_url,
        'no_cache': args.no_cache,
    }
    return ProvisionSettings.from_sources(env=env, settings_file=args.settings, overrides=overrides)


def configure_secret(
    settings: ProvisionSettings,
    secret: Optional[str] = None,
    interactive: bool = True,
    dry_run: bool = False,
    input_fn: Callable[[str], str] = input,
) -> bool:
    """
    Capture the manager-api secret, write it and restart the server.

    Returns:
        True if a secret was written
    """
    if secret is None and interactive:
        print(f"If you want to auto-write server.secret into {settings.config_file}, paste it now.", flush=True)
        secret = prompt_for_secret(input_fn)
    secret = (secret or "").strip()

    if not secret:
        print("⚠️ Skipped secret configuration.", flush=True)
        return False

    if dry_run:
        print(f"[DRY-RUN] write {MANAGER_API_KEY}.url/secret to {settings.config_file}", flush=True)
        docker_ops.restart_container(settings, dry_run=True)
        return True

    apply_manager_api_secret(settings.config_file, secret)
    if docker_ops.restart_container(settings):
        print("✅ Secret key written; container restarted.", flush=True)
    else:
        print(f"✅ Secret key written; restart {settings.container_name} to apply it.", flush=True)
    return True


def print_summary(ip: str) -> None:
    print("", flush=True)
    print("✅ Done", flush=True)
    print(f"Admin Panel:  http://{ip}:{ADMIN_PANEL_PORT}", flush=True)
    print(f"WebSocket:    ws://{ip}:{WEBSOCKET_PORT}{WEBSOCKET_PATH}", flush=True)


def main_execution(
    settings: ProvisionSettings,
    dry_run: bool = False,
    skip_download: bool = False,
    skip_build: bool = False,
    secret: Optional[str] = None,
    interactive: bool = True,
    print_settings: bool = False,
    input_fn: Callable[[str], str] = input,
) -> dict:
    """
    Main provisioning pipeline.

    Missing Docker, buildx or compose file exit the process with status 1.
    Other failures are reported in the returned result dict.
    """
    result = {
        'status': 'success',
        'dry_run': dry_run,
        'created_dirs': [],
        'model_downloaded': False,
        'builder_created': False,
        'daemon_healthy': None,
        'secret_written': False,
    }

    if print_settings:
        print("\n[DEBUG] Resolved settings:", flush=True)
        print(json.dumps(settings.to_dict(), indent=2), flush=True)

    try:
        print("📁 Checking directories...", flush=True)
        if dry_run:
            print(f"[DRY-RUN] mkdir -p {settings.data_dir} {settings.model_dir}", flush=True)
        else:
            result['created_dirs'] = [str(p) for p in ensure_directories(settings)]

        print("📥 Checking model...", flush=True)
        if skip_download:
            print("[INFO] --skip-download: Skipping model download", flush=True)
        elif dry_run and not settings.model_path.exists():
            print(f"[DRY-RUN] download {settings.model_url} -> {settings.model_path}", flush=True)
        else:
            result['model_downloaded'] = ensure_model(settings)

        print("🐳 Checking Docker...", flush=True)
        docker_ops.check_docker_installed()
        result['daemon_healthy'] = docker_ops.check_docker_daemon(settings)

        if skip_build:
            print("[INFO] --skip-build: Skipping builder setup and image build", flush=True)
        else:
            print("🔧 Ensuring buildx...", flush=True)
            docker_ops.check_buildx()
            result['builder_created'] = docker_ops.ensure_builder(settings, dry_run=dry_run)
            docker_ops.build_image(settings, dry_run=dry_run)

        docker_ops.compose_up(settings, dry_run=dry_run)

        ip = primary_ip()
        print("", flush=True)
        print("🔗 Server management panel:", flush=True)
        print(f"  - Local:  http://127.0.0.1:{ADMIN_PANEL_PORT}/", flush=True)
        print(f"  - Public: http://{ip}:{ADMIN_PANEL_PORT}/", flush=True)
        print("", flush=True)

        result['secret_written'] = configure_secret(
            settings,
            secret=secret,
            interactive=interactive,
            dry_run=dry_run,
            input_fn=input_fn,
        )

        print_summary(ip)

    except docker_ops.CommandError as e:
        result['status'] = 'error'
        result['message'] = str(e)
        print(f"[ERROR] {e}", flush=True)
    except requests.RequestException as e:
        result['status'] = 'error'
        result['message'] = f"Model download failed: {e}"
        print(f"[ERROR] {result['message']}", flush=True)
    except (OSError, ValueError) as e:
        result['status'] = 'error'
        result['message'] = str(e)
        print(f"[ERROR] {e}", flush=True)
        logger.debug("Provisioning failed", exc_info=True)
    except KeyboardInterrupt:
        result['status'] = 'interrupted'
        result['message'] = 'User aborted provisioning'
        print("\n[WARN] User aborted provisioning", flush=True)

    return result


def main(argv: Optional[list] = None, input_fn: Callable[[str], str] = input) -> int:
    args = parse_arguments(argv)
    configure_logging(args.log_level)

    try:
        settings = settings_from_arguments(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"[ERROR] {e}", flush=True)
        return 1

    logger.debug(f"Base directory: {settings.base_dir}")
    logger.debug(f"Compose file: {settings.compose_file}")

    result = main_execution(
        settings,
        dry_run=args.dry_run,
        skip_download=args.skip_download,
        skip_build=args.skip_build,
        secret=args.secret,
        interactive=not args.yes,
        print_settings=args.print_settings,
        input_fn=input_fn,
    )

    if result.get('status') == 'success':
        return 0
    return 1


if __name__ == '__main__':
    raise SystemExit(main())
