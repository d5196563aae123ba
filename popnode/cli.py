#!/usr/bin/env python3
"""
PoP Node Installer

Installs, backs up and restores a PoP cache node running in Docker.

Usage:
    sudo popnode install                 Fresh installation (default)
    popnode backup                       Create a backup and a temporary download link
    sudo popnode restore <archive>       Restore from a backup archive
    popnode help                         Show this help

Only one popnode command may run per host at a time; concurrent runs share the
state directory and the container name without any locking.
"""

import logging
import signal
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TextIO

import click
from rich.prompt import Prompt

from popnode import __version__
from popnode.backup import create_backup, restore_from_backup, serve_backup, validate_archive
from popnode.collector import collect_config, normalize_invite_code
from popnode.config import AppConfig
from popnode.deploy import deploy, fetch_binary, prepare_state_dir, show_status
from popnode.errors import SetupError, TuningError
from popnode.prerequisites import ensure_prerequisites
from popnode.render import write_build_descriptor, write_config
from popnode.runtime import AptPackageManager, ContainerRuntime, DockerRuntime, PackageManager
from popnode.shell import CommandRunner, is_root, run_command
from popnode.tuning import apply_tuning, free_ports
from popnode.ui import (
    console,
    create_header,
    print_error,
    print_section,
    print_step,
    print_warning,
    setup_logging,
)

logger = logging.getLogger(__name__)


@dataclass
class NodeContext:
    """Collaborators shared by every subcommand."""

    settings: AppConfig = field(default_factory=AppConfig.from_env)
    runtime: Optional[ContainerRuntime] = None
    packages: Optional[PackageManager] = None
    stream: Optional[TextIO] = None
    run: CommandRunner = run_command

    def __post_init__(self) -> None:
        if self.runtime is None:
            self.runtime = DockerRuntime(
                script_url=self.settings.docker_script_url,
                http_timeout=self.settings.http_timeout,
            )
        if self.packages is None:
            self.packages = AptPackageManager()


def require_root(settings: AppConfig) -> None:
    if settings.require_root and not is_root():
        raise click.ClickException("This command must be run as root (e.g., using sudo).")


def prepare_host(ctx: NodeContext) -> None:
    """Prerequisites, port reclaim and tuning; shared by install and restore."""
    ensure_prerequisites(ctx.packages, ctx.runtime)
    free_ports(run=ctx.run)
    try:
        apply_tuning(ctx.settings, ctx.run)
    except TuningError as e:
        logger.warning("%s", e)
        print_warning(f"{e} (continuing)")


def run_step(func, *args, **kwargs):
    """Run an installer step, turning SetupError into a clean exit."""
    try:
        return func(*args, **kwargs)
    except SetupError as e:
        logger.error("%s", e)
        print_error(str(e))
        sys.exit(1)


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Enable debug logging on the console.")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """PoP cache node installer with backup and restore."""
    if ctx.obj is None:
        ctx.obj = NodeContext()
    setup_logging(ctx.obj.settings.log_file, debug)
    if ctx.invoked_subcommand is None:
        ctx.invoke(install)


@cli.command()
@click.option(
    "--init-wait",
    type=int,
    default=None,
    help="Seconds to wait for the node to initialize before the first backup.",
)
@click.option("--no-backup", is_flag=True, help="Skip the automatic backup after install.")
@click.pass_obj
def install(obj: NodeContext, init_wait: Optional[int], no_backup: bool) -> None:
    """Fresh installation (default)."""
    settings = obj.settings
    console.print(create_header())
    require_root(settings)

    run_step(prepare_host, obj)
    node = collect_config(settings, obj.stream)

    print_section("Preparing State Directory")
    run_step(prepare_state_dir, settings.state_dir)
    run_step(fetch_binary, settings.state_dir, settings)
    run_step(write_config, node, settings.state_dir)
    run_step(write_build_descriptor, settings, settings.state_dir)
    run_step(deploy, settings.state_dir, node.invite_code, obj.runtime, settings)
    show_status(settings)

    if no_backup:
        return
    wait = settings.init_wait if init_wait is None else init_wait
    print_step(f"Waiting for node to initialize ({wait} seconds)...")
    time.sleep(wait)
    print_step("Creating automatic backup...")
    archive = run_step(create_backup, settings)
    serve_backup(archive, settings, obj.stream)


@cli.command()
@click.pass_obj
def backup(obj: NodeContext) -> None:
    """Create a backup and serve it over a temporary download link."""
    archive = run_step(create_backup, obj.settings)
    serve_backup(archive, obj.settings, obj.stream)


@cli.command()
@click.argument("archive", type=click.Path(path_type=Path))
@click.option(
    "--invite-code",
    envvar="POP_INVITE_CODE",
    default=None,
    help="Invite code for the restored node (prompted for when omitted).",
)
@click.pass_obj
def restore(obj: NodeContext, archive: Path, invite_code: Optional[str]) -> None:
    """Restore the node from a backup ARCHIVE."""
    settings = obj.settings
    run_step(validate_archive, archive, settings.state_dir)
    require_root(settings)

    if invite_code is None:
        invite_code = Prompt.ask(
            "[bold]Enter your POP_INVITE_CODE[/]",
            console=console,
            stream=obj.stream,
            default="",
            show_default=False,
        )
    invite_code = normalize_invite_code(invite_code)

    run_step(prepare_host, obj)
    run_step(restore_from_backup, archive, settings, obj.runtime, invite_code)


@cli.command("help")
@click.pass_context
def help_command(ctx: click.Context) -> None:
    """Show usage."""
    click.echo(ctx.parent.get_help())


def handle_termination(signum: int, frame) -> None:
    """Turn SIGTERM/SIGHUP into SystemExit so cleanup blocks still run."""
    logger.warning("Received signal %d, exiting.", signum)
    sys.exit(128 + signum)


def main() -> None:
    for sig in (signal.SIGTERM, signal.SIGHUP):
        signal.signal(sig, handle_termination)
    try:
        cli()
    except KeyboardInterrupt:
        print_warning("Interrupted by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
