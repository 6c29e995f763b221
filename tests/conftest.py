import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import pytest

from zkcluster_src.manager import ClusterManager
from zkcluster_src.models import ClusterContext, ClusterSettings


@dataclass
class Call:
    cmd: list[str]
    cwd: Optional[Path]
    env: Optional[dict[str, str]]


class FakeRun:
    """Stand-in for subprocess.run that records commands instead of running them"""

    def __init__(self):
        self.calls: list[Call] = []
        self.responses: list[tuple[tuple[str, ...], str, int, Optional[Callable]]] = []

    def respond(
        self,
        prefix: list[str],
        stdout: str = "",
        returncode: int = 0,
        action: Optional[Callable[[list[str]], None]] = None,
    ) -> None:
        self.responses.append((tuple(prefix), stdout, returncode, action))

    @property
    def commands(self) -> list[list[str]]:
        return [call.cmd for call in self.calls]

    def __call__(
        self,
        cmd,
        *args,
        check=False,
        capture_output=False,
        text=False,
        cwd=None,
        env=None,
        **kwargs,
    ):
        cmd = list(cmd)
        self.calls.append(Call(cmd, Path(cwd) if cwd else None, env))

        stdout, returncode, action = "", 0, None
        best = -1
        for prefix, out, code, act in self.responses:
            if tuple(cmd[: len(prefix)]) == prefix and len(prefix) >= best:
                best = len(prefix)
                stdout, returncode, action = out, code, act

        if action is not None:
            action(cmd)
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, output=stdout)
        return subprocess.CompletedProcess(
            cmd, returncode, stdout=stdout if capture_output else None, stderr=""
        )


@pytest.fixture(autouse=True)
def clean_cluster_env(monkeypatch):
    for key in list(os.environ):
        if key.upper().startswith("CLUSTER_"):
            monkeypatch.delenv(key)


@pytest.fixture
def fake_run(monkeypatch) -> FakeRun:
    fake = FakeRun()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path, data_dir: Path) -> ClusterSettings:
    return ClusterSettings(data=data_dir, backup=tmp_path / "backup", name="testcluster")


@pytest.fixture
def make_manager(settings: ClusterSettings, tmp_path: Path):
    def factory(swarm: bool = True, arch: str = "x86_64", **overrides) -> ClusterManager:
        cluster_settings = settings.model_copy(update=overrides)
        context = ClusterContext(
            settings=cluster_settings,
            arch=arch,
            swarm=swarm,
            cluster_name=cluster_settings.name,
        )
        return ClusterManager(context, source_dir=tmp_path / "src")

    return factory


@pytest.fixture
def make_stack(data_dir: Path):
    def factory(token: str, files: Optional[dict[str, str]] = None) -> Path:
        directory = data_dir / token
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "docker-compose.yml").write_text("services: {}\n", encoding="utf-8")
        for name, content in (files or {}).items():
            (directory / name).write_text(content, encoding="utf-8")
        return directory

    return factory
