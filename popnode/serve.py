"""
Single-file HTTP listener, run as `python -m popnode.serve PORT ARCHIVE SECONDS`.

Only GET/HEAD of /<archive name> are answered; every other path is a 404 and
there is no directory listing. The process arms SIGALRM for SECONDS on start,
so it exits at its deadline even when the installer that spawned it is gone.
"""

import logging
import shutil
import signal
import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlsplit

logger = logging.getLogger("popnode.serve")

BIND_ADDRESS = "0.0.0.0"
CHUNK_SIZE = 1024 * 64


class ArchiveHandler(BaseHTTPRequestHandler):
    archive: Path = Path()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def _resolve(self) -> Optional[Path]:
        path = unquote(urlsplit(self.path).path)
        if path != f"/{self.archive.name}" or not self.archive.is_file():
            self.send_error(404, "Not found")
            return None
        self.send_response(200)
        self.send_header("Content-Type", "application/gzip")
        self.send_header("Content-Length", str(self.archive.stat().st_size))
        self.send_header(
            "Content-Disposition", f'attachment; filename="{self.archive.name}"'
        )
        self.end_headers()
        return self.archive

    def do_HEAD(self):
        self._resolve()

    def do_GET(self):
        archive = self._resolve()
        if archive is None:
            return
        with open(archive, "rb") as f:
            shutil.copyfileobj(f, self.wfile, CHUNK_SIZE)


def make_server(archive: Path, port: int, host: str = BIND_ADDRESS) -> ThreadingHTTPServer:
    handler = type("BoundArchiveHandler", (ArchiveHandler,), {"archive": archive})
    server = ThreadingHTTPServer((host, port), handler)
    server.daemon_threads = True
    return server


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 3:
        print("usage: python -m popnode.serve PORT ARCHIVE SECONDS", file=sys.stderr)
        return 2
    port, archive, seconds = int(args[0]), Path(args[1]).resolve(), int(args[2])

    # Default SIGALRM action terminates the process.
    signal.signal(signal.SIGALRM, signal.SIG_DFL)
    signal.alarm(max(1, seconds))

    with make_server(archive, port) as server:
        server.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
