"""
External HTTP lookups: public IP, geolocation and release downloads.

IP and geolocation lookups are best effort. A failed lookup is logged and
returns an empty string; callers use whatever comes back.
"""

import logging
from pathlib import Path

import requests
from requests import RequestException
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)

from popnode.ui import NordColors, console

logger = logging.getLogger(__name__)

CHUNK_SIZE: int = 1024 * 64

__all__ = [
    "RequestException",
    "download_file",
    "fetch_text",
    "get_geolocation",
    "get_public_ip",
]


def fetch_text(url: str, timeout: int = 10) -> str:
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.text


def get_public_ip(url: str = "https://ipinfo.io/ip", timeout: int = 10) -> str:
    try:
        return fetch_text(url, timeout=timeout).strip()
    except RequestException as e:
        logger.warning("Failed to retrieve public IP address: %s", e)
        return ""


def get_geolocation(url: str = "https://ipinfo.io/json", timeout: int = 10) -> str:
    """Return "region, country" for this host as reported by the lookup service."""
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (RequestException, ValueError) as e:
        logger.warning("Failed to detect location: %s", e)
        return ""
    region = data.get("region") or ""
    country = data.get("country") or ""
    return f"{region}, {country}"


def download_file(url: str, dest: Path, timeout: int = 10) -> Path:
    """Stream url to dest with a progress bar. Raises RequestException on failure."""
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        total = int(response.headers.get("content-length", 0)) or None
        with Progress(
            SpinnerColumn(style=f"bold {NordColors.FROST_3}"),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=None, style=f"bold {NordColors.FROST_2}"),
            DownloadColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task(f"Downloading {dest.name}", total=total)
            with open(dest, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
                    progress.advance(task, len(chunk))
    logger.info("Downloaded %s to %s", url, dest)
    return dest
