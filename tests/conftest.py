"""
Pytest Configuration and Fixtures

Shared fixtures: temporary installer settings, a fake container runtime and
package manager, and a scripted command runner.
"""

import subprocess
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pytest

from popnode import net
from popnode.config import AppConfig, Identity, NodeConfig
from popnode.errors import DeployError
from popnode.runtime import ContainerRuntime, ContainerSpec, PackageManager


# ============================================================================
# Fakes
# ============================================================================

class FakeRuntime(ContainerRuntime):
    """Records every call instead of talking to Docker."""

    name = "FakeDocker"

    def __init__(self, installed: bool = True) -> None:
        self.installed = installed
        self.calls: List[Tuple] = []
        self.containers: Dict[str, ContainerSpec] = {}
        self.fail_on: str = ""

    def _maybe_fail(self, op: str) -> None:
        if self.fail_on == op:
            raise DeployError(f"{op} failed")

    def is_installed(self) -> bool:
        return self.installed

    def install(self) -> None:
        self.calls.append(("install",))
        self.installed = True

    def enable_service(self) -> None:
        self.calls.append(("enable_service",))

    def remove_container(self, name: str, ignore_errors: bool = False) -> None:
        self.calls.append(("remove_container", name, ignore_errors))
        self._maybe_fail("remove_container")
        self.containers.pop(name, None)

    def build_image(self, tag: str, context_dir: Path) -> None:
        self.calls.append(("build_image", tag, Path(context_dir)))
        self._maybe_fail("build_image")

    def run_container(self, spec: ContainerSpec) -> None:
        self.calls.append(("run_container", spec))
        self._maybe_fail("run_container")
        self.containers[spec.name] = spec

    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]


class FakePackages(PackageManager):
    def __init__(self, present: Sequence[str] = ("jq", "ss", "lsof", "fuser")) -> None:
        self.present = set(present)
        self.installed: List[Tuple[str, ...]] = []

    def has_command(self, cmd: str) -> bool:
        return cmd in self.present

    def install(self, packages: Sequence[str]) -> None:
        self.installed.append(tuple(packages))


class FakeRunner:
    """Callable stand-in for run_command with scripted return codes."""

    def __init__(self) -> None:
        self.commands: List[List[str]] = []
        self.returncodes: Dict[Tuple[str, ...], List[int]] = {}
        self.stderr: Dict[Tuple[str, ...], str] = {}
        self.hangs: set = set()

    def script(self, cmd: Sequence[str], *codes: int, stderr: str = "") -> None:
        self.returncodes[tuple(cmd)] = list(codes)
        self.stderr[tuple(cmd)] = stderr

    def hang(self, cmd: Sequence[str]) -> None:
        """Make cmd time out the way run_command does."""
        self.hangs.add(tuple(cmd))

    def __call__(self, cmd, check=True, capture_output=True, **kwargs):
        self.commands.append(list(cmd))
        if tuple(cmd) in self.hangs:
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout") or 600)
        codes = self.returncodes.get(tuple(cmd), [])
        code = codes.pop(0) if codes else 0
        stderr = self.stderr.get(tuple(cmd), "")
        if check and code != 0:
            raise subprocess.CalledProcessError(code, cmd, output="", stderr=stderr)
        return subprocess.CompletedProcess(cmd, code, stdout="", stderr=stderr)


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path: Path) -> AppConfig:
    """Installer settings rooted in a temporary directory."""
    return AppConfig(
        state_dir=tmp_path / "opt" / "popcache",
        backup_dir=tmp_path / "backups",
        log_file=tmp_path / "log" / "popnode.log",
        sysctl_conf=tmp_path / "etc" / "sysctl.d" / "99-popcache.conf",
        limits_conf=tmp_path / "etc" / "security" / "limits.d" / "popcache.conf",
        transfer_timeout=2,
        transfer_grace=2.0,
        init_wait=0,
        require_root=False,
    )


@pytest.fixture
def installed(settings: AppConfig) -> AppConfig:
    """Settings whose state directory looks like a running installation."""
    settings.state_dir.mkdir(parents=True)
    settings.config_path.write_text('{"pop_name": "edge-1"}\n')
    (settings.state_dir / ".pop_state.json").write_text('{"node_id": "abc"}')
    (settings.state_dir / ".pop_state.json.bak").write_text('{"node_id": "abc-old"}')
    (settings.state_dir / "pop").write_text("binary")
    return settings


@pytest.fixture
def node() -> NodeConfig:
    return NodeConfig(
        pop_name="edge-1",
        pop_location="Hesse, DE",
        identity=Identity(
            node_name="edge-node",
            name="Ada",
            email="ada@example.com",
            discord="ada#1",
            telegram="@ada",
            solana_pubkey="So1anaPubKey",
        ),
        invite_code="MYCODE123",
    )


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def packages() -> FakePackages:
    return FakePackages()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    """Keep every test off the network."""
    monkeypatch.setattr(net, "get_public_ip", lambda *a, **kw: "203.0.113.7")
    monkeypatch.setattr(net, "get_geolocation", lambda *a, **kw: "Hesse, DE")
