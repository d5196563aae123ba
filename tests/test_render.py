"""Tests for config.json and Dockerfile rendering."""

import json

import pytest

from popnode.config import AppConfig, CacheSizing, Identity, NodeConfig
from popnode.errors import DeployError
from popnode.render import (
    render_build_descriptor,
    render_config,
    write_build_descriptor,
    write_config,
)


def test_config_schema(node: NodeConfig):
    doc = json.loads(render_config(node))

    assert set(doc) == {
        "pop_name",
        "pop_location",
        "server",
        "cache_config",
        "api_endpoints",
        "identity_config",
    }
    assert doc["pop_name"] == "edge-1"
    assert doc["pop_location"] == "Hesse, DE"
    assert doc["server"] == {"host": "0.0.0.0", "port": 443, "http_port": 80, "workers": 0}
    assert doc["cache_config"] == {
        "memory_cache_size_mb": 4096,
        "disk_cache_path": "./cache",
        "disk_cache_size_gb": 100,
        "default_ttl_seconds": 86400,
        "respect_origin_headers": True,
        "max_cacheable_size_mb": 1024,
    }
    assert doc["api_endpoints"] == {"base_url": "https://dataplane.pipenetwork.com"}
    assert doc["identity_config"] == {
        "node_name": "edge-node",
        "name": "Ada",
        "email": "ada@example.com",
        "website": "https://your-website.com",
        "discord": "ada#1",
        "telegram": "@ada",
        "solana_pubkey": "So1anaPubKey",
    }


def test_invite_code_is_not_written(node: NodeConfig):
    assert node.invite_code not in render_config(node)


def test_server_ports_are_fixed():
    odd = NodeConfig(
        pop_name="",
        pop_location="",
        identity=Identity(email="not-an-email", solana_pubkey=""),
        cache=CacheSizing(memory_cache_size_mb=1, disk_cache_size_gb=0),
    )
    doc = json.loads(render_config(odd))
    assert doc["server"]["port"] == 443
    assert doc["server"]["http_port"] == 80


def test_values_are_json_escaped():
    node = NodeConfig(pop_name='my "pop"', pop_location="Zürich, CH", identity=Identity())
    doc = json.loads(render_config(node))
    assert doc["pop_name"] == 'my "pop"'
    assert doc["pop_location"] == "Zürich, CH"


def test_build_descriptor(settings: AppConfig):
    dockerfile = render_build_descriptor(settings)
    lines = dockerfile.splitlines()

    assert lines[0] == "FROM ubuntu:24.04"
    assert "ca-certificates" in dockerfile
    assert "libssl-dev" in dockerfile
    assert "WORKDIR /opt/popcache" in lines
    assert "COPY pop ." in lines
    assert "COPY config.json ." in lines
    assert lines[-1] == 'CMD ["./pop"]'


def test_write_files(settings: AppConfig, node: NodeConfig):
    settings.state_dir.mkdir(parents=True)

    config_path = write_config(node, settings.state_dir)
    dockerfile = write_build_descriptor(settings, settings.state_dir)

    assert config_path == settings.config_path
    assert json.loads(config_path.read_text())["pop_name"] == "edge-1"
    assert dockerfile.read_text().startswith("FROM ")


def test_write_into_missing_dir(settings: AppConfig, node: NodeConfig):
    with pytest.raises(DeployError):
        write_config(node, settings.state_dir)
    with pytest.raises(DeployError):
        write_build_descriptor(settings, settings.state_dir)
