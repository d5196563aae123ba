"""Make sure Docker and the small CLI toolset the installer relies on are present."""

import logging

from popnode.runtime import ContainerRuntime, PackageManager
from popnode.ui import print_section, print_step, print_success

logger = logging.getLogger(__name__)

# Commands we need and the packages that provide them.
REQUIRED_COMMANDS = ("jq", "ss", "lsof", "fuser")
REQUIRED_PACKAGES = ("jq", "iproute2", "wget", "curl", "lsof", "psmisc")


def ensure_prerequisites(packages: PackageManager, runtime: ContainerRuntime) -> None:
    """
    Install the container runtime and required packages when missing.

    Raises PrerequisiteError (from the capability implementations) on any
    failure; nothing is retried.
    """
    print_section("Checking Prerequisites")

    print_step(f"Checking for {runtime.name} installation...")
    if runtime.is_installed():
        print_success(f"{runtime.name} is already installed.")
    else:
        print_step(f"{runtime.name} not found. Installing...")
        runtime.install()
        runtime.enable_service()
        logger.info("%s installed and service enabled", runtime.name)
        print_success(f"{runtime.name} installed.")

    print_step("Checking for required packages...")
    missing = [cmd for cmd in REQUIRED_COMMANDS if not packages.has_command(cmd)]
    if not missing:
        print_success("Required packages are already installed.")
        return
    logger.info("Missing commands: %s", ", ".join(missing))
    print_step(f"Installing required packages ({', '.join(REQUIRED_PACKAGES)})...")
    packages.install(REQUIRED_PACKAGES)
    print_success("Required packages installed.")
