"""Interactive collection of the operator's node configuration."""

import re
import shutil
from typing import Callable, Optional, TextIO

from rich.prompt import Prompt

from popnode import net
from popnode.config import AppConfig, CacheSizing, Identity, NodeConfig
from popnode.ui import NordColors, console, print_message, print_section, print_warning

# Pasted invite codes often arrive wrapped in JSON ({"code": "XYZ"}) or quotes.
# The pattern keeps the last quoted value on the line, then spaces, commas and
# quotes are dropped entirely.
_QUOTED_VALUE = re.compile(r'.*"([^"]*)".*')
_STRIP_CHARS = str.maketrans("", "", ' ,"')


def normalize_invite_code(raw: str) -> str:
    """
    Reduce a pasted invite code to its bare token.

    >>> normalize_invite_code('"MY,CODE"')
    'MYCODE'
    """
    text = raw.strip()
    text = _QUOTED_VALUE.sub(r"\1", text)
    return text.translate(_STRIP_CHARS)


def detect_location(settings: AppConfig) -> str:
    return net.get_geolocation(settings.geo_url, timeout=settings.http_timeout)


def _free_disk_space(path: str = "/") -> str:
    free = shutil.disk_usage(path).free
    for unit in ("B", "K", "M", "G", "T"):
        if free < 1024:
            return f"{free:.0f}{unit}"
        free /= 1024
    return f"{free:.1f}P"


def collect_config(
    settings: AppConfig,
    stream: Optional[TextIO] = None,
    locate: Optional[Callable[[AppConfig], str]] = None,
) -> NodeConfig:
    """
    Ask the operator for every NodeConfig field.

    Empty answers are accepted as-is except for the cache sizes, which fall
    back to the configured defaults. The location is detected, not asked for.
    """
    locate = locate or detect_location
    print_section("Node Configuration")

    def ask(question: str) -> str:
        answer = Prompt.ask(
            f"[bold]{question}[/]",
            console=console,
            stream=stream,
            default="",
            show_default=False,
        )
        return answer.strip()

    def ask_int(question: str, default: int) -> int:
        while True:
            answer = ask(f"{question} [{default}]")
            if not answer:
                return default
            try:
                return int(answer)
            except ValueError:
                print_warning("Please enter a whole number.")

    pop_name = ask("Enter your POP name")

    location = locate(settings)
    print_message(f"Auto-detected location: {location}", NordColors.FROST_2, "🌍")

    memory_mb = ask_int("Enter memory cache size in MB", settings.default_memory_mb)
    disk_gb = ask_int(
        f"Enter disk cache size in GB (free on server: {_free_disk_space()})",
        settings.default_disk_gb,
    )

    identity = Identity(
        node_name=ask("Enter your node name (EN)"),
        name=ask("Enter your name (EN)"),
        email=ask("Enter your email"),
        website=settings.website_placeholder,
        discord=ask("Enter your Discord username"),
        telegram=ask("Enter your Telegram username"),
        solana_pubkey=ask("Enter your Solana wallet address"),
    )
    invite_code = normalize_invite_code(ask("Enter your POP_INVITE_CODE"))

    return NodeConfig(
        pop_name=pop_name,
        pop_location=location,
        identity=identity,
        cache=CacheSizing(memory_cache_size_mb=memory_mb, disk_cache_size_gb=disk_gb),
        api_base_url=settings.api_base_url,
        invite_code=invite_code,
    )
