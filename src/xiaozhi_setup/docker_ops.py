#!/usr/bin/env python3
"""
Docker operations for the Jetson deployment.

Covers availability checks (docker, daemon, buildx), the buildx builder,
the base image build, compose up and the server container restart.
Checks that detect a missing hard dependency print a remediation hint and
exit with status 1. Failed commands raise CommandError.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess

from .config_constants import (
    BUILDX_INSTALL_HINT,
    DOCKER_INSTALL_HINT,
    iptables_raw_workaround_lines,
)
from .settings import ProvisionSettings


logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """An external command exited with a non-zero status."""

    def __init__(self, cmd: list[str], returncode: int, output: str = ''):
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        message = f"Command failed (exit {returncode}): {shlex.join(cmd)}"
        if output:
            message += f"\n{output.strip()}"
        super().__init__(message)


def run_command(cmd: list[str], check: bool = True, dry_run: bool = False) -> subprocess.CompletedProcess:
    """Run a command quietly, capturing output."""
    if dry_run:
        print(f"[DRY-RUN] {shlex.join(cmd)}", flush=True)
        return subprocess.CompletedProcess(cmd, 0, '', '')

    logger.debug(f"Running: {shlex.join(cmd)}")
    result = subprocess.run(cmd, capture_output=True, text=True)
    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stderr or result.stdout or '')
    return result


def stream_command(cmd: list[str], prefix: str, dry_run: bool = False) -> None:
    """Run a long command, echoing its combined output line by line."""
    if dry_run:
        print(f"[DRY-RUN] {shlex.join(cmd)}", flush=True)
        return

    logger.debug(f"Running: {shlex.join(cmd)}")
    proc = subprocess.Popen(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
    )

    try:
        for line in proc.stdout:
            print(f"  [{prefix}] {line.rstrip()}", flush=True)
        proc.wait()
    except KeyboardInterrupt:
        print(f"\n[WARN] User interrupted {prefix.lower()}", flush=True)
        raise
    finally:
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()

    if proc.returncode != 0:
        raise CommandError(cmd, proc.returncode)


def check_docker_installed() -> str:
    """Return the docker binary path or exit if Docker is not installed."""
    docker_path = shutil.which('docker')
    if docker_path is None:
        print("❌ Docker not found. Install Docker first, then re-run.", flush=True)
        print(f"   Install: {DOCKER_INSTALL_HINT}", flush=True)
        raise SystemExit(1)
    logger.debug(f"docker found at {docker_path}")
    return docker_path


def check_docker_daemon(settings: ProvisionSettings) -> bool:
    """
    Probe the Docker daemon with 'docker info'.

    An unhealthy daemon is not fatal: the Jetson iptables/raw workaround is
    printed and provisioning continues.
    """
    cmd = ['docker', 'info']
    if settings.use_sudo:
        cmd = ['sudo'] + cmd

    try:
        healthy = run_command(cmd, check=False).returncode == 0
    except OSError as e:
        logger.debug(f"docker info could not be started: {e}")
        healthy = False

    if healthy:
        return True

    logger.warning("Docker daemon not healthy")
    print("⚠️ Docker daemon not healthy; if you see iptables/raw errors on Jetson, apply the workaround:", flush=True)
    for line in iptables_raw_workaround_lines():
        print(f"   {line}", flush=True)
    return False


def check_buildx() -> None:
    """Exit if the buildx plugin is not available."""
    if run_command(['docker', 'buildx', 'version'], check=False).returncode != 0:
        print("❌ buildx not available. Install the buildx plugin, e.g.:", flush=True)
        print(f"   {BUILDX_INSTALL_HINT}", flush=True)
        raise SystemExit(1)


def ensure_builder(settings: ProvisionSettings, dry_run: bool = False) -> bool:
    """
    Create the buildx builder if absent, then select and bootstrap it.

    'docker buildx use' is issued separately because older buildx releases
    do not accept --use on create.

    Returns:
        True if a new builder was created
    """
    name = settings.builder_name
    created = False

    if run_command(['docker', 'buildx', 'inspect', name], check=False).returncode != 0:
        print(f"🔧 Creating buildx builder: {name}", flush=True)
        run_command(['docker', 'buildx', 'create', '--name', name], dry_run=dry_run)
        created = True
    else:
        logger.info(f"Builder already exists: {name}")

    run_command(['docker', 'buildx', 'use', name], dry_run=dry_run)
    run_command(['docker', 'buildx', 'inspect', '--bootstrap'], dry_run=dry_run)
    return created


def build_command(settings: ProvisionSettings) -> list[str]:
    """Assemble the 'docker buildx build' command line."""
    cmd = ['docker', 'buildx', 'build']
    if settings.no_cache:
        cmd.append('--no-cache')

    # --load makes the image visible to 'docker compose' without a push
    cmd += [
        '--platform', settings.platform,
        '--load',
        '-t', settings.image_name,
        '-f', settings.dockerfile,
    ]

    if settings.pip_index_url:
        cmd += [
            '--build-arg', f'PIP_INDEX_URL={settings.pip_index_url}',
            '--build-arg', f'PIP_TRUSTED_HOST={settings.pip_trusted_host}',
        ]

    cmd.append(str(settings.build_context))
    return cmd


def build_image(settings: ProvisionSettings, dry_run: bool = False) -> None:
    print(f"🏗️ Building image: {settings.image_name}", flush=True)
    stream_command(build_command(settings), 'BUILD', dry_run=dry_run)


def compose_up(settings: ProvisionSettings, dry_run: bool = False) -> None:
    """Start the compose stack; exit if the compose file is missing."""
    compose_file = settings.compose_file
    print(f"🚀 Starting services with Docker Compose (ARM64): {compose_file}", flush=True)

    if not compose_file.is_file():
        print(f"❌ Compose file not found: {compose_file}", flush=True)
        raise SystemExit(1)

    stream_command(
        ['docker', 'compose', '-f', str(compose_file), 'up', '-d', '--build'],
        'COMPOSE',
        dry_run=dry_run,
    )


def restart_container(settings: ProvisionSettings, dry_run: bool = False) -> bool:
    """
    Restart the server container, ignoring failures.

    Returns:
        True if the restart succeeded
    """
    cmd = ['docker', 'restart', settings.container_name]
    try:
        result = run_command(cmd, check=False, dry_run=dry_run)
    except OSError as e:
        logger.warning(f"Could not restart {settings.container_name}: {e}")
        return False

    if result.returncode != 0:
        logger.warning(
            f"Restart of {settings.container_name} failed (exit {result.returncode}); "
            "restart it manually to apply the new secret"
        )
        return False
    return True
