"""
Temporary HTTP download of a backup archive.

The listener (popnode.serve) exposes the one archive file: no authentication
and no TLS, only a deadline. It runs as a child process owned by
download_server(), which terminates it on exit; the child also carries its own
alarm, so it stops at the deadline if this process dies first.
"""

import errno
import logging
import math
import select
import socket
import subprocess
import sys
import time
from contextlib import closing, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, TextIO

logger = logging.getLogger(__name__)

MAX_PORT: int = 65535


class NoFreePortError(OSError):
    pass


@dataclass
class TransferSession:
    archive: Path
    port: int
    process: subprocess.Popen
    deadline: float

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    @property
    def running(self) -> bool:
        return self.process.poll() is None


def port_is_free(port: int, host: str = "0.0.0.0") -> bool:
    """Probe the same IPv4 wildcard address the listener binds."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        try:
            s.bind((host, port))
        except OSError as e:
            if e.errno in (errno.EADDRINUSE, errno.EACCES):
                return False
            raise
    return True


def find_free_port(start: int = 8888, host: str = "0.0.0.0") -> int:
    """Return the first port >= start that can be bound."""
    for port in range(start, MAX_PORT + 1):
        if port_is_free(port, host):
            return port
        logger.debug("Port %d is busy", port)
    raise NoFreePortError(f"No free TCP port at or above {start}")


def stop_process(process: subprocess.Popen, grace: float = 5.0) -> None:
    """Terminate, then kill after the grace period. Errors are ignored."""
    if process.poll() is not None:
        return
    try:
        process.terminate()
        try:
            process.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait(timeout=grace)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Ignoring error while stopping listener %s: %s", process.pid, e)


@contextmanager
def download_server(
    archive: Path, port: int, timeout: float, grace: float = 5.0
) -> Iterator[TransferSession]:
    """Serve archive alone on port until the block exits or timeout passes."""
    process = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "popnode.serve",
            str(port),
            str(archive),
            str(max(1, math.ceil(timeout))),
        ],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    logger.info("Download listener pid %d serving %s on port %d", process.pid, archive, port)
    session = TransferSession(
        archive=archive,
        port=port,
        process=process,
        deadline=time.monotonic() + timeout,
    )
    try:
        yield session
    finally:
        stop_process(process, grace)
        logger.info("Download listener on port %d stopped", port)


def wait_for_operator(
    stream: Optional[TextIO], session: TransferSession, poll: float = 1.0
) -> bool:
    """
    Block until a line arrives on stream or the session deadline passes.

    Returns True when the operator confirmed, False on timeout or when the
    listener died on its own.
    """
    stream = stream if stream is not None else sys.stdin
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, ValueError):
        fd = None

    if fd is None:
        # No selectable descriptor (an in-memory stream): whatever it holds is the answer.
        stream.readline()
        return True

    while True:
        remaining = session.remaining()
        if remaining <= 0:
            return False
        if not session.running:
            logger.warning("Download listener exited early (code %s)", session.process.returncode)
            return False
        ready, _, _ = select.select([fd], [], [], min(poll, remaining))
        if ready:
            stream.readline()
            return True
