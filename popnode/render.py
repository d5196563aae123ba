"""Rendering of config.json and the node's Dockerfile."""

import json
import logging
from pathlib import Path
from typing import Any, Dict

from popnode.config import CONFIG_FILE_NAME, AppConfig, NodeConfig
from popnode.errors import DeployError

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"
IMAGE_PACKAGES = ("ca-certificates", "curl", "libssl-dev")


def config_document(node: NodeConfig) -> Dict[str, Any]:
    """Build the config.json structure read by the node binary at startup."""
    identity = node.identity
    cache = node.cache
    return {
        "pop_name": node.pop_name,
        "pop_location": node.pop_location,
        "server": {
            "host": node.server.host,
            "port": node.server.port,
            "http_port": node.server.http_port,
            "workers": node.server.workers,
        },
        "cache_config": {
            "memory_cache_size_mb": cache.memory_cache_size_mb,
            "disk_cache_path": cache.disk_cache_path,
            "disk_cache_size_gb": cache.disk_cache_size_gb,
            "default_ttl_seconds": cache.default_ttl_seconds,
            "respect_origin_headers": cache.respect_origin_headers,
            "max_cacheable_size_mb": cache.max_cacheable_size_mb,
        },
        "api_endpoints": {
            "base_url": node.api_base_url,
        },
        "identity_config": {
            "node_name": identity.node_name,
            "name": identity.name,
            "email": identity.email,
            "website": identity.website,
            "discord": identity.discord,
            "telegram": identity.telegram,
            "solana_pubkey": identity.solana_pubkey,
        },
    }


def render_config(node: NodeConfig) -> str:
    return json.dumps(config_document(node), indent=2, ensure_ascii=False) + "\n"


def render_build_descriptor(settings: AppConfig) -> str:
    packages = " \\\n    ".join(IMAGE_PACKAGES)
    return f"""FROM {settings.base_image}

RUN apt update && apt install -y \\
    {packages} \\
    && rm -rf /var/lib/apt/lists/*

WORKDIR {settings.image_workdir}

COPY {settings.binary_name} .
COPY {CONFIG_FILE_NAME} .

RUN chmod +x ./{settings.binary_name}

CMD ["./{settings.binary_name}"]
"""


def write_config(node: NodeConfig, state_dir: Path) -> Path:
    path = state_dir / CONFIG_FILE_NAME
    try:
        path.write_text(render_config(node))
    except OSError as e:
        raise DeployError(f"Failed to write {path}: {e}") from e
    logger.info("Wrote %s", path)
    return path


def write_build_descriptor(settings: AppConfig, state_dir: Path) -> Path:
    path = state_dir / DOCKERFILE_NAME
    try:
        path.write_text(render_build_descriptor(settings))
    except OSError as e:
        raise DeployError(f"Failed to write {path}: {e}") from e
    logger.info("Wrote %s", path)
    return path
