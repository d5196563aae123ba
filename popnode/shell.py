"""Subprocess helpers shared by the installer steps."""

import logging
import os
import shutil
import subprocess
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

OPERATION_TIMEOUT: int = 600

CommandRunner = Callable[..., subprocess.CompletedProcess]


def run_command(
    cmd: List[str],
    check: bool = True,
    capture_output: bool = True,
    input: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[int] = OPERATION_TIMEOUT,
) -> subprocess.CompletedProcess:
    """
    Execute a system command and return the CompletedProcess.

    Args:
        cmd: Command and arguments as a list
        check: Raise CalledProcessError on a non-zero exit status
        capture_output: Capture stdout/stderr instead of streaming them
        input: Text fed to the command's stdin
        env: Environment for the command (defaults to the current one)
        timeout: Seconds before the command is killed
    """
    logger.debug("Executing command: %s", " ".join(cmd))
    try:
        return subprocess.run(
            cmd,
            check=check,
            capture_output=capture_output,
            text=True,
            input=input,
            env=env or os.environ.copy(),
            timeout=timeout,
        )
    except subprocess.CalledProcessError as e:
        logger.error("Command failed (%s): %s", e.returncode, " ".join(cmd))
        if e.stderr:
            logger.error("Stderr: %s", e.stderr.strip())
        raise
    except subprocess.TimeoutExpired:
        logger.error("Command timed out after %s seconds: %s", timeout, " ".join(cmd))
        raise


def command_exists(cmd: str) -> bool:
    """Check if a command exists in PATH."""
    return shutil.which(cmd) is not None


def is_root() -> bool:
    return os.geteuid() == 0
