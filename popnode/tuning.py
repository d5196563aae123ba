"""
Host tuning: kernel network parameters, file-descriptor limits and the
reclaiming of ports 80/443.

Both changes outlive this tool. Nothing here is ever rolled back.
"""

import logging
import subprocess
from typing import Iterable

from popnode.config import LIMITS_SETTINGS, SYSCTL_SETTINGS, AppConfig
from popnode.errors import PortConflictError, TuningError
from popnode.shell import CommandRunner, run_command
from popnode.ui import print_section, print_step, print_success, print_warning

logger = logging.getLogger(__name__)

NODE_PORTS = (80, 443)


def apply_tuning(settings: AppConfig, run: CommandRunner = run_command) -> None:
    """
    Persist sysctl and limits settings, then load the sysctl file.

    Raises TuningError when a file cannot be written or sysctl fails.
    """
    print_section("System Tuning")
    for path, content in (
        (settings.sysctl_conf, SYSCTL_SETTINGS),
        (settings.limits_conf, LIMITS_SETTINGS),
    ):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        except OSError as e:
            raise TuningError(f"Failed to write {path}: {e}") from e
        logger.warning("Persistent system configuration written to %s", path)
        print_step(f"Wrote {path} (persists after this installer exits)")

    try:
        run(["sysctl", "-p", str(settings.sysctl_conf)])
    except (subprocess.SubprocessError, OSError) as e:
        raise TuningError(f"Failed to apply {settings.sysctl_conf}: {e}") from e
    print_success("Kernel network parameters applied.")


def port_in_use(port: int, run: CommandRunner = run_command) -> bool:
    result = run(["lsof", "-i", f":{port}"], check=False)
    return result.returncode == 0


def reclaim_port(port: int, run: CommandRunner = run_command) -> None:
    """Kill whatever holds port/tcp. Raises PortConflictError if it stays busy."""
    logger.warning("Killing the process holding port %d/tcp", port)
    run(["fuser", "-k", f"{port}/tcp"], check=False)
    if port_in_use(port, run):
        raise PortConflictError(port)


def free_ports(ports: Iterable[int] = NODE_PORTS, run: CommandRunner = run_command) -> None:
    """
    Make sure the node's ports are free, killing their current holders.

    This can terminate unrelated services (a web server on 80/443, for example).
    """
    print_section("Checking Ports")
    for port in ports:
        if not port_in_use(port, run):
            print_success(f"Port {port} is free.")
            continue
        print_warning(f"Port {port} is in use. Killing the process...")
        try:
            reclaim_port(port, run)
        except PortConflictError as e:
            logger.warning("%s", e)
            print_warning(str(e))
        else:
            print_success(f"Port {port} reclaimed.")
