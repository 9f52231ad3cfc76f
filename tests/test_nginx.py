import subprocess
from pathlib import Path

import pytest

from certprov.common.errors import ActivationError, StorageError
from certprov.common.models import ArtifactSet
from certprov.storage import nginx
from certprov.storage.nginx import enable_site, reload_nginx, render_vhost, write_vhost


@pytest.fixture
def artifacts():
    directory = Path("/etc/local-ca/issued/svc.local")
    return ArtifactSet(key_path=directory / "svc.local.key.pem", cert_path=directory / "svc.local.crt.pem")


def test_render_references_artifacts_and_upstream(request_for, artifacts):
    text = render_vhost(request_for("svc.local", "http://svc.local:8080"), artifacts)

    assert "    ssl_certificate     /etc/local-ca/issued/svc.local/svc.local.crt.pem;" in text
    assert "    ssl_certificate_key /etc/local-ca/issued/svc.local/svc.local.key.pem;" in text
    assert "        proxy_pass http://svc.local:8080/;" in text
    assert text.count("server_name svc.local;") == 2
    assert "return 301 https://$host$request_uri;" in text
    assert "listen 443 ssl http2;" in text
    assert 'proxy_set_header Connection "upgrade";' in text
    assert "{" in text and "{{" not in text


def test_render_collapses_trailing_slash(request_for, artifacts):
    text = render_vhost(request_for("svc.local", "https://10.0.0.50:3001/"), artifacts)
    assert "proxy_pass https://10.0.0.50:3001/;" in text


def test_render_uses_absolute_paths(request_for):
    relative = ArtifactSet(key_path=Path("issued/a.local/a.local.key.pem"), cert_path=Path("issued/a.local/a.local.crt.pem"))
    text = render_vhost(request_for("a.local"), relative)
    for line in text.splitlines():
        if line.strip().startswith("ssl_certificate"):
            assert Path(line.split()[-1].rstrip(";")).is_absolute()


def test_write_vhost_replaces_existing(tmp_path):
    path = tmp_path / "svc.local"
    path.write_text("old")
    write_vhost(path, "new config\n")

    assert path.read_text() == "new config\n"
    assert [p.name for p in tmp_path.iterdir()] == ["svc.local"]


def test_write_vhost_missing_directory(tmp_path):
    with pytest.raises(StorageError) as exc:
        write_vhost(tmp_path / "missing" / "svc.local", "x")
    assert exc.value.path == tmp_path / "missing" / "svc.local"


def test_enable_site_creates_symlink(tmp_path):
    available = tmp_path / "available" / "svc.local"
    available.parent.mkdir()
    available.write_text("conf")
    enabled = tmp_path / "svc.local"

    assert enable_site(available, enabled) is True
    assert enabled.is_symlink()
    assert enabled.resolve() == available.resolve()


def test_enable_site_skips_existing_entries(tmp_path):
    available = tmp_path / "conf"
    available.write_text("conf")

    dangling = tmp_path / "dangling"
    dangling.symlink_to(tmp_path / "nowhere")
    assert enable_site(available, dangling) is False
    assert not dangling.exists()

    regular = tmp_path / "regular"
    regular.write_text("hand written")
    assert enable_site(available, regular) is False
    assert regular.read_text() == "hand written"


def test_reload_runs_config_test_then_reload(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    monkeypatch.setattr(nginx.subprocess, "run", fake_run)
    reload_nginx()
    assert calls == [["nginx", "-t"], ["systemctl", "reload", "nginx"]]


def test_failed_config_test_skips_reload(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        raise subprocess.CalledProcessError(1, cmd, output="", stderr="nginx: [emerg] unexpected }")

    monkeypatch.setattr(nginx.subprocess, "run", fake_run)
    with pytest.raises(ActivationError, match="unexpected"):
        reload_nginx()
    assert calls == [["nginx", "-t"]]


def test_missing_nginx_binary(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(nginx.subprocess, "run", fake_run)
    with pytest.raises(ActivationError, match="Command not found: nginx"):
        reload_nginx()
