"""
Capability interfaces for the container engine and the system package manager.

The orchestration code only talks to ContainerRuntime and PackageManager, so it
can be exercised against in-memory fakes. DockerRuntime and AptPackageManager
are the real implementations and shell out through run_command.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from popnode import net
from popnode.errors import DeployError, PrerequisiteError
from popnode.shell import CommandRunner, command_exists, run_command

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS = ("No such container", "no such container")


def failure_detail(error: subprocess.SubprocessError) -> str:
    """Captured stderr when there is any, otherwise the exit status or timeout."""
    stderr = getattr(error, "stderr", None) or ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode(errors="replace")
    return stderr.strip() or str(error)


@dataclass
class ContainerSpec:
    """How a container is launched."""

    name: str
    image: str
    ports: List[Tuple[int, int]] = field(default_factory=list)
    volumes: List[Tuple[str, str]] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    workdir: str = ""
    restart: str = "unless-stopped"


class ContainerRuntime(ABC):
    """Operations the installer needs from a container engine."""

    name: str = "container runtime"

    @abstractmethod
    def is_installed(self) -> bool: ...

    @abstractmethod
    def install(self) -> None: ...

    @abstractmethod
    def enable_service(self) -> None: ...

    @abstractmethod
    def remove_container(self, name: str, ignore_errors: bool = False) -> None: ...

    @abstractmethod
    def build_image(self, tag: str, context_dir: Path) -> None: ...

    @abstractmethod
    def run_container(self, spec: ContainerSpec) -> None: ...


class PackageManager(ABC):
    """Operations the installer needs from the platform package manager."""

    @abstractmethod
    def has_command(self, cmd: str) -> bool: ...

    @abstractmethod
    def install(self, packages: Sequence[str]) -> None: ...


class DockerRuntime(ContainerRuntime):
    name = "Docker"

    def __init__(
        self,
        run: CommandRunner = run_command,
        script_url: str = "https://get.docker.com",
        http_timeout: int = 10,
    ) -> None:
        self.run = run
        self.script_url = script_url
        self.http_timeout = http_timeout

    def is_installed(self) -> bool:
        return command_exists("docker")

    def install(self) -> None:
        """Install Docker with the upstream convenience script."""
        try:
            script = net.fetch_text(self.script_url, timeout=self.http_timeout)
            self.run(["sh", "-s"], input=script, capture_output=False)
        except (net.RequestException, subprocess.SubprocessError) as e:
            raise PrerequisiteError(f"Failed to install Docker: {e}") from e

    def enable_service(self) -> None:
        try:
            self.run(["systemctl", "enable", "docker"])
            self.run(["systemctl", "start", "docker"])
        except subprocess.SubprocessError as e:
            raise PrerequisiteError(f"Failed to start the docker service: {e}") from e

    def remove_container(self, name: str, ignore_errors: bool = False) -> None:
        """Stop and remove a container; a missing container is not an error."""
        for action in ("stop", "rm"):
            try:
                result = self.run(["docker", action, name], check=False)
            except subprocess.SubprocessError as e:
                if ignore_errors:
                    logger.debug("docker %s %s skipped: %s", action, name, e)
                    continue
                raise DeployError(f"docker {action} {name} failed: {e}") from e
            if result.returncode == 0:
                logger.info("docker %s %s", action, name)
                continue
            stderr = result.stderr or ""
            if ignore_errors or any(marker in stderr for marker in NOT_FOUND_MARKERS):
                logger.debug("docker %s %s skipped: %s", action, name, stderr.strip())
                continue
            raise DeployError(f"docker {action} {name} failed: {stderr.strip()}")

    def build_image(self, tag: str, context_dir: Path) -> None:
        try:
            self.run(["docker", "build", "-t", tag, str(context_dir)], capture_output=False)
        except subprocess.SubprocessError as e:
            raise DeployError(f"Failed to build image {tag}: {failure_detail(e)}") from e

    def run_container(self, spec: ContainerSpec) -> None:
        try:
            self.run(self.run_args(spec))
        except subprocess.SubprocessError as e:
            raise DeployError(f"Failed to start container {spec.name}: {failure_detail(e)}") from e

    @staticmethod
    def run_args(spec: ContainerSpec) -> List[str]:
        """Translate a ContainerSpec into a `docker run -d` command line."""
        cmd = ["docker", "run", "-d", "--name", spec.name]
        for host_port, container_port in spec.ports:
            cmd += ["-p", f"{host_port}:{container_port}"]
        for host_path, container_path in spec.volumes:
            cmd += ["-v", f"{host_path}:{container_path}"]
        if spec.workdir:
            cmd += ["-w", spec.workdir]
        for key, value in spec.env.items():
            cmd += ["-e", f"{key}={value}"]
        if spec.restart:
            cmd += ["--restart", spec.restart]
        cmd.append(spec.image)
        return cmd


class AptPackageManager(PackageManager):
    def __init__(self, run: CommandRunner = run_command) -> None:
        self.run = run

    def has_command(self, cmd: str) -> bool:
        return command_exists(cmd)

    def install(self, packages: Sequence[str]) -> None:
        try:
            self.run(["apt", "update"], capture_output=False)
            self.run(["apt", "install", "-y", *packages], capture_output=False)
        except subprocess.SubprocessError as e:
            raise PrerequisiteError(
                f"Failed to install {', '.join(packages)}: {failure_detail(e)}"
            ) from e
