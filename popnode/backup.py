"""
Backup and restore of the node's persisted state.

A backup captures config.json and the two runtime state files into a
timestamped tarball and offers it over a short-lived HTTP listener. A restore
wipes the state directory, unpacks an archive into it and redeploys. There is
no rollback: a restore that fails after the wipe leaves the node uninstalled.
"""

import logging
import shutil
import tarfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, TextIO

from popnode import net
from popnode.config import BACKUP_FILES, CONFIG_FILE_NAME, AppConfig
from popnode.deploy import deploy, fetch_binary, prepare_state_dir, show_status
from popnode.errors import (
    ArchiveInStateDirError,
    ArchiveNotFoundError,
    DeployError,
    NoInstallationError,
)
from popnode.render import write_build_descriptor
from popnode.runtime import ContainerRuntime
from popnode.transfer import download_server, find_free_port, wait_for_operator
from popnode.ui import (
    NordColors,
    console,
    print_message,
    print_section,
    print_step,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "popnode_backup_"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def backup_archive_path(settings: AppConfig, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return settings.backup_dir / f"{ARCHIVE_PREFIX}{stamp}.tar.gz"


def create_backup(settings: AppConfig, now: Optional[datetime] = None) -> Path:
    """
    Archive the node's config and state files.

    Raises NoInstallationError when config.json is missing; no archive is
    written in that case. Missing state files are skipped.
    """
    print_section("Creating Backup")
    if not settings.config_path.is_file():
        raise NoInstallationError("No existing installation found to backup!")

    settings.backup_dir.mkdir(parents=True, exist_ok=True)
    staging = settings.backup_dir / settings.staging_name
    archive_path = backup_archive_path(settings, now)
    if staging.exists():
        shutil.rmtree(staging)
    staging.mkdir(parents=True)
    try:
        for name in BACKUP_FILES:
            source = settings.state_dir / name
            if not source.is_file():
                logger.info("Skipping %s: not present", source)
                continue
            shutil.copy2(source, staging / name)
            print_step(f"Copied {name}")

        with tarfile.open(archive_path, "w:gz") as archive:
            for item in sorted(staging.iterdir()):
                archive.add(item, arcname=item.name)
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    logger.info("Backup created: %s", archive_path)
    print_success(f"Backup created: {archive_path}")
    return archive_path


def serve_backup(
    archive: Path,
    settings: AppConfig,
    stream: Optional[TextIO] = None,
    public_ip: Optional[Callable[[], str]] = None,
) -> bool:
    """
    Offer archive for download until the operator presses Enter or the
    listener deadline passes. Returns True if the operator ended the session.

    The archive stays on disk either way.
    """
    print_section("Temporary Download Link")
    port = find_free_port(settings.transfer_start_port)
    if public_ip is None:
        ip = net.get_public_ip(settings.ip_echo_url, timeout=settings.http_timeout)
    else:
        ip = public_ip()
    url = f"http://{ip}:{port}/{archive.name}"
    minutes = settings.transfer_timeout // 60

    print_message("Download your backup from:", NordColors.GREEN, "📁")
    console.print(f"   [{NordColors.FROST_4}]{url}[/]")
    print_message(f"Link will be available for {minutes} minutes", NordColors.ORANGE, "⏰")
    print_message("Direct download command:", NordColors.GREEN, "🔗")
    console.print(f"   [{NordColors.FROST_4}]wget {url}[/]")
    console.print()
    print_message(
        f"Press Enter after downloading to continue, or wait {minutes} minutes for auto-timeout...",
        NordColors.ORANGE,
        "⌛",
    )

    with download_server(
        archive, port, settings.transfer_timeout, settings.transfer_grace
    ) as session:
        confirmed = wait_for_operator(stream, session)

    if confirmed:
        logger.info("Operator ended the download session for %s", archive)
    else:
        logger.info("Download session for %s ended without confirmation", archive)
    print_success("Download server stopped")
    return confirmed


def validate_archive(archive: Path, state_dir: Optional[Path] = None) -> Path:
    """
    Check that archive exists and, when state_dir is given, that restoring
    from it will not delete it.
    """
    if not archive.is_file():
        raise ArchiveNotFoundError(archive)
    if state_dir is not None and archive.resolve().is_relative_to(state_dir.resolve()):
        raise ArchiveInStateDirError(archive, state_dir)
    return archive


def extract_archive(archive: Path, state_dir: Path) -> None:
    try:
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(state_dir, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise DeployError(f"Failed to extract {archive}: {e}") from e


def restore_from_backup(
    archive: Path,
    settings: AppConfig,
    runtime: ContainerRuntime,
    invite_code: str,
    fetch: Callable[[Path, AppConfig], Path] = fetch_binary,
) -> None:
    """
    Rebuild the node from archive.

    config.json is taken verbatim from the archive; it is not re-rendered.
    """
    archive = validate_archive(Path(archive), settings.state_dir).resolve()
    print_section("Restoring From Backup")
    print_step(f"Restoring from backup: {archive}")

    print_step(f"Stopping container {settings.container_name}...")
    runtime.remove_container(settings.container_name, ignore_errors=True)

    prepare_state_dir(settings.state_dir)

    print_step("Extracting backup...")
    extract_archive(archive, settings.state_dir)
    if not settings.config_path.is_file():
        print_warning(f"{CONFIG_FILE_NAME} was not in the archive; the node will not start correctly.")

    fetch(settings.state_dir, settings)
    write_build_descriptor(settings, settings.state_dir)
    deploy(settings.state_dir, invite_code, runtime, settings)

    logger.info("Restore from %s completed", archive)
    print_success("Restore completed successfully!")
    show_status(settings)
