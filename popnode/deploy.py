"""
Deployment of the node container.

The state directory is bind-mounted into the container, so the container owns
it while running. deploy() always removes an existing container of the same
name first, so at most one instance runs per host.
"""

import logging
import resource
import shutil
import tarfile
from pathlib import Path

from popnode import net
from popnode.config import AppConfig
from popnode.errors import DeployError
from popnode.runtime import ContainerRuntime, ContainerSpec
from popnode.ui import (
    NordColors,
    console,
    display_panel,
    print_section,
    print_step,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)


def prepare_state_dir(state_dir: Path) -> None:
    """Remove any previous state directory and recreate it world-writable."""
    try:
        if state_dir.exists():
            print_step(f"Removing existing {state_dir} directory...")
            shutil.rmtree(state_dir)
        state_dir.mkdir(parents=True)
        state_dir.chmod(0o777)
    except OSError as e:
        raise DeployError(f"Failed to prepare {state_dir}: {e}") from e
    logger.info("Prepared empty state directory %s", state_dir)


def fetch_binary(state_dir: Path, settings: AppConfig) -> Path:
    """Download the pinned release into state_dir and unpack it. Returns the binary path."""
    print_step("Downloading PoP binary...")
    tarball = state_dir / settings.binary_archive_name
    try:
        net.download_file(settings.binary_url, tarball, timeout=settings.http_timeout)
        with tarfile.open(tarball, "r:gz") as archive:
            archive.extractall(state_dir, filter="data")
    except (net.RequestException, tarfile.TarError, OSError) as e:
        raise DeployError(f"Failed to fetch {settings.binary_url}: {e}") from e

    binary = state_dir / settings.binary_name
    if not binary.is_file():
        raise DeployError(f"Release archive did not contain {settings.binary_name}")
    binary.chmod(0o755)
    print_success(f"Binary ready at {binary}")
    return binary


def raise_fd_limit(limit: int) -> None:
    """Raise this process's open-file soft limit (inherited by docker CLI calls)."""
    try:
        _, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        if hard != resource.RLIM_INFINITY:
            limit = min(limit, hard)
        resource.setrlimit(resource.RLIMIT_NOFILE, (limit, hard))
    except (ValueError, OSError) as e:
        print_warning(f"ulimit couldn't be changed ({e}). You may need to relogin.")


def deploy(
    state_dir: Path,
    invite_code: str,
    runtime: ContainerRuntime,
    settings: AppConfig,
) -> None:
    """
    Replace the node container with a fresh build from state_dir.

    Raises DeployError if removing, building or starting the container fails.
    """
    print_section("Deploying Container")
    raise_fd_limit(settings.fd_limit)

    print_step(f"Removing existing container {settings.container_name}...")
    runtime.remove_container(settings.container_name)

    print_step(f"Building image {settings.image_tag}...")
    runtime.build_image(settings.image_tag, state_dir)

    print_step("Launching container...")
    if not invite_code:
        print_warning(f"{settings.invite_env_var} is empty; the node may refuse to join.")
    spec = ContainerSpec(
        name=settings.container_name,
        image=settings.image_tag,
        ports=list(settings.published_ports),
        volumes=[(str(state_dir), settings.container_workdir)],
        env={settings.invite_env_var: invite_code},
        workdir=settings.container_workdir,
        restart=settings.restart_policy,
    )
    runtime.run_container(spec)
    logger.info("Container %s started from image %s", spec.name, spec.image)
    print_success(f"Container {spec.name} is running.")


def show_status(settings: AppConfig) -> None:
    ip = net.get_public_ip(settings.ip_echo_url, timeout=settings.http_timeout)
    lines = [
        f"[{NordColors.FROST_2}]View logs:[/] docker logs -f {settings.container_name}",
        f"[{NordColors.FROST_2}]Check health in browser:[/] http://{ip}/health",
        f"[{NordColors.FROST_2}]Check secure status:[/] https://{ip}/state",
        f"[{NordColors.FROST_2}]Important files location:[/] {settings.state_dir}/",
        f"[{NordColors.FROST_2}]Configuration file:[/] {settings.config_path}",
    ]
    display_panel("Setup complete", "\n".join(lines), NordColors.GREEN)
    console.print()
