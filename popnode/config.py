#!/usr/bin/env python3
"""
Configuration for the PoP node installer.

AppConfig holds every path, URL and tunable the installer touches. Defaults
match a standard single-node deployment under /opt/popcache; environment
variables prefixed with POPNODE_ override them.

NodeConfig is the immutable set of operator answers collected during install.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

# ----------------------------------------------------------------
# Constants
# ----------------------------------------------------------------
APP_NAME: str = "PoP Node"
APP_SUBTITLE: str = "Cache Node Installer"

BINARY_VERSION: str = "0.3.2"
BINARY_URL: str = (
    f"https://download.pipe.network/static/pop-v{BINARY_VERSION}-linux-x64.tar.gz"
)

CONFIG_FILE_NAME: str = "config.json"
STATE_FILE_NAME: str = ".pop_state.json"
STATE_BACKUP_FILE_NAME: str = ".pop_state.json.bak"

# Files captured by a backup, in archive order. Only config.json is mandatory.
BACKUP_FILES: Tuple[str, ...] = (
    CONFIG_FILE_NAME,
    STATE_FILE_NAME,
    STATE_BACKUP_FILE_NAME,
)

SYSCTL_SETTINGS: str = """net.ipv4.ip_local_port_range = 1024 65535
net.core.somaxconn = 65535
net.ipv4.tcp_low_latency = 1
net.ipv4.tcp_fastopen = 3
net.ipv4.tcp_slow_start_after_idle = 0
net.ipv4.tcp_window_scaling = 1
net.ipv4.tcp_wmem = 4096 65536 16777216
net.ipv4.tcp_rmem = 4096 87380 16777216
net.core.wmem_max = 16777216
net.core.rmem_max = 16777216
"""

LIMITS_SETTINGS: str = """*    hard nofile 65535
*    soft nofile 65535
"""


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    """Installer settings: filesystem layout, endpoints and timeouts."""

    # Filesystem layout
    state_dir: Path = Path("/opt/popcache")
    backup_dir: Path = Path("/tmp")
    staging_name: str = "popnode_backup"
    log_file: Path = Path("/var/log/popnode_installer.log")
    sysctl_conf: Path = Path("/etc/sysctl.d/99-popcache.conf")
    limits_conf: Path = Path("/etc/security/limits.d/popcache.conf")

    # Container deployment
    container_name: str = "popnode"
    image_tag: str = "popnode"
    base_image: str = "ubuntu:24.04"
    container_workdir: str = "/app"
    image_workdir: str = "/opt/popcache"
    published_ports: List[Tuple[int, int]] = field(
        default_factory=lambda: [(80, 80), (443, 443)]
    )
    restart_policy: str = "unless-stopped"
    invite_env_var: str = "POP_INVITE_CODE"
    fd_limit: int = 65535

    # Release artifact
    binary_url: str = BINARY_URL
    binary_name: str = "pop"

    # External services
    ip_echo_url: str = "https://ipinfo.io/ip"
    geo_url: str = "https://ipinfo.io/json"
    docker_script_url: str = "https://get.docker.com"
    api_base_url: str = "https://dataplane.pipenetwork.com"
    website_placeholder: str = "https://your-website.com"
    http_timeout: int = 10

    # Cache sizing defaults
    default_memory_mb: int = 4096
    default_disk_gb: int = 100

    # Download listener
    transfer_start_port: int = 8888
    transfer_timeout: int = 600
    transfer_grace: float = 5.0

    # Install flow
    init_wait: int = 30
    require_root: bool = True

    @property
    def config_path(self) -> Path:
        return self.state_dir / CONFIG_FILE_NAME

    @property
    def binary_archive_name(self) -> str:
        return self.binary_url.rsplit("/", 1)[-1]

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build settings from defaults overridden by POPNODE_* variables."""
        overrides: Dict[str, object] = {}
        paths = {
            "POPNODE_STATE_DIR": "state_dir",
            "POPNODE_BACKUP_DIR": "backup_dir",
            "POPNODE_LOG_FILE": "log_file",
        }
        for env_name, attr in paths.items():
            if os.environ.get(env_name):
                overrides[attr] = Path(os.environ[env_name])
        if os.environ.get("POPNODE_CONTAINER_NAME"):
            overrides["container_name"] = os.environ["POPNODE_CONTAINER_NAME"]
            overrides["image_tag"] = os.environ["POPNODE_CONTAINER_NAME"]
        if os.environ.get("POPNODE_BINARY_URL"):
            overrides["binary_url"] = os.environ["POPNODE_BINARY_URL"]
        if os.environ.get("POPNODE_TRANSFER_PORT"):
            overrides["transfer_start_port"] = int(os.environ["POPNODE_TRANSFER_PORT"])
        if os.environ.get("POPNODE_TRANSFER_TIMEOUT"):
            overrides["transfer_timeout"] = int(os.environ["POPNODE_TRANSFER_TIMEOUT"])
        overrides["require_root"] = _env_bool("POPNODE_REQUIRE_ROOT", True)
        return cls(**overrides)


# ----------------------------------------------------------------
# Operator answers
# ----------------------------------------------------------------
@dataclass(frozen=True)
class Identity:
    node_name: str = ""
    name: str = ""
    email: str = ""
    website: str = "https://your-website.com"
    discord: str = ""
    telegram: str = ""
    solana_pubkey: str = ""


@dataclass(frozen=True)
class CacheSizing:
    memory_cache_size_mb: int = 4096
    disk_cache_size_gb: int = 100
    disk_cache_path: str = "./cache"
    default_ttl_seconds: int = 86400
    respect_origin_headers: bool = True
    max_cacheable_size_mb: int = 1024


@dataclass(frozen=True)
class ServerBinding:
    host: str = "0.0.0.0"
    port: int = 443
    http_port: int = 80
    workers: int = 0


@dataclass(frozen=True)
class NodeConfig:
    """Everything the operator told us, plus the detected location."""

    pop_name: str
    pop_location: str
    identity: Identity
    cache: CacheSizing = CacheSizing()
    api_base_url: str = "https://dataplane.pipenetwork.com"
    invite_code: str = ""

    # Fixed; the node always listens on 80/443 inside the container.
    server: ServerBinding = field(default=ServerBinding(), init=False)
