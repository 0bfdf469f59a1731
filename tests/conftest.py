"""
Shared fixtures: settings rooted in tmp_path and a fake docker CLI.
"""

from __future__ import annotations

import subprocess
import sys
from contextlib import ExitStack, contextmanager
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from xiaozhi_setup.settings import ProvisionSettings  # noqa: E402


def make_settings(tmp_path: Path, **overrides) -> ProvisionSettings:
    env = {
        "BASE_DIR": str(tmp_path / "srv"),
        "COMPOSE_FILE": str(tmp_path / "docker-compose_arm.yml"),
        "DOCKER_SUDO": "0",
    }
    return ProvisionSettings.from_sources(env=env, cwd=tmp_path, overrides=overrides)


class FakeDocker:
    """Stands in for the docker/hostname binaries behind subprocess."""

    def __init__(self, builders=(), daemon_healthy=True, buildx_available=True,
                 restart_rc=0, stream_rc=0):
        self.builders = set(builders)
        self.daemon_healthy = daemon_healthy
        self.buildx_available = buildx_available
        self.restart_rc = restart_rc
        self.stream_rc = stream_rc
        self.calls = []
        self.streamed = []

    def run(self, cmd, **kwargs):
        cmd = list(cmd)
        self.calls.append(cmd)
        rc = 0
        stdout = ""

        if cmd[0] == "sudo":
            cmd = cmd[1:]

        if cmd[:1] == ["hostname"]:
            stdout = "192.168.1.50 172.17.0.1\n"
        elif cmd[:2] == ["docker", "info"]:
            rc = 0 if self.daemon_healthy else 1
        elif cmd[:3] == ["docker", "buildx", "version"]:
            rc = 0 if self.buildx_available else 1
        elif cmd[:3] == ["docker", "buildx", "inspect"] and cmd[3:] != ["--bootstrap"]:
            rc = 0 if cmd[3] in self.builders else 1
        elif cmd[:3] == ["docker", "buildx", "create"]:
            self.builders.add(cmd[cmd.index("--name") + 1])
        elif cmd[:2] == ["docker", "restart"]:
            rc = self.restart_rc

        return subprocess.CompletedProcess(cmd, rc, stdout, "")

    def popen(self, cmd, **kwargs):
        self.streamed.append(list(cmd))
        proc = MagicMock()
        proc.stdout = iter(["#1 step\n", "#2 done\n"])
        proc.returncode = self.stream_rc
        proc.wait.return_value = self.stream_rc
        return proc

    def commands(self, *prefix):
        return [c for c in self.calls if c[:len(prefix)] == list(prefix)]

    @contextmanager
    def active(self, docker_path="/usr/bin/docker"):
        with ExitStack() as stack:
            stack.enter_context(patch("subprocess.run", side_effect=self.run))
            stack.enter_context(patch("subprocess.Popen", side_effect=self.popen))
            stack.enter_context(patch("shutil.which", return_value=docker_path))
            yield self


def fake_response(chunks, status_error=None, content_length=True):
    resp = MagicMock()
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    resp.iter_content.return_value = list(chunks)
    resp.headers = {"Content-Length": str(sum(len(c) for c in chunks))} if content_length else {}
    if status_error is not None:
        resp.raise_for_status.side_effect = status_error
    return resp


def fake_session(chunks, **kwargs):
    session = MagicMock()
    session.get.return_value = fake_response(chunks, **kwargs)
    return session


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def fake_docker():
    return FakeDocker()
