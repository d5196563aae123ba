"""Tests for the deployment runner."""

import io
import stat
import tarfile
from pathlib import Path

import pytest

from popnode import net
from popnode.config import AppConfig
from popnode.deploy import deploy, fetch_binary, prepare_state_dir, show_status
from popnode.errors import DeployError


def make_release(path: Path, members: dict) -> None:
    with tarfile.open(path, "w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))


class TestDeploy:
    def test_replaces_container(self, settings: AppConfig, runtime):
        settings.state_dir.mkdir(parents=True)

        deploy(settings.state_dir, "CODE", runtime, settings)

        assert runtime.ops() == ["remove_container", "build_image", "run_container"]
        assert runtime.calls[0] == ("remove_container", "popnode", False)
        assert runtime.calls[1] == ("build_image", "popnode", settings.state_dir)
        spec = runtime.calls[2][1]
        assert spec.name == "popnode"
        assert spec.ports == [(80, 80), (443, 443)]
        assert spec.volumes == [(str(settings.state_dir), "/app")]
        assert spec.env == {"POP_INVITE_CODE": "CODE"}
        assert spec.restart == "unless-stopped"

    def test_build_failure_stops_deploy(self, settings: AppConfig, runtime):
        runtime.fail_on = "build_image"

        with pytest.raises(DeployError):
            deploy(settings.state_dir, "CODE", runtime, settings)
        assert "run_container" not in runtime.ops()

    def test_single_instance(self, settings: AppConfig, runtime):
        deploy(settings.state_dir, "A", runtime, settings)
        deploy(settings.state_dir, "B", runtime, settings)

        assert list(runtime.containers) == ["popnode"]
        assert runtime.containers["popnode"].env["POP_INVITE_CODE"] == "B"


class TestStateDir:
    def test_prepare_wipes_previous_content(self, installed: AppConfig):
        prepare_state_dir(installed.state_dir)

        assert installed.state_dir.is_dir()
        assert list(installed.state_dir.iterdir()) == []
        assert stat.S_IMODE(installed.state_dir.stat().st_mode) == 0o777

    def test_prepare_creates_missing(self, settings: AppConfig):
        prepare_state_dir(settings.state_dir)
        assert settings.state_dir.is_dir()

    def test_prepare_failure_raises_deploy_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        with pytest.raises(DeployError, match="Failed to prepare"):
            prepare_state_dir(blocker / "popcache")


class TestFetchBinary:
    def test_unpacks_and_marks_executable(self, settings: AppConfig, monkeypatch):
        settings.state_dir.mkdir(parents=True)

        def fake_download(url, dest, timeout=10):
            make_release(dest, {"pop": b"#!/bin/sh\necho pop\n"})
            return dest

        monkeypatch.setattr(net, "download_file", fake_download)

        binary = fetch_binary(settings.state_dir, settings)

        assert binary == settings.state_dir / "pop"
        assert stat.S_IMODE(binary.stat().st_mode) == 0o755
        assert (settings.state_dir / settings.binary_archive_name).exists()

    def test_missing_binary_in_release(self, settings: AppConfig, monkeypatch):
        settings.state_dir.mkdir(parents=True)

        def fake_download(url, dest, timeout=10):
            make_release(dest, {"README": b"nothing here"})
            return dest

        monkeypatch.setattr(net, "download_file", fake_download)

        with pytest.raises(DeployError):
            fetch_binary(settings.state_dir, settings)

    def test_download_failure(self, settings: AppConfig, monkeypatch):
        settings.state_dir.mkdir(parents=True)

        def fake_download(url, dest, timeout=10):
            raise net.RequestException("404")

        monkeypatch.setattr(net, "download_file", fake_download)

        with pytest.raises(DeployError):
            fetch_binary(settings.state_dir, settings)


def test_show_status_mentions_public_ip(settings: AppConfig, capsys):
    show_status(settings)
    out = capsys.readouterr().out
    assert "http://203.0.113.7/health" in out
    assert "docker logs -f popnode" in out
