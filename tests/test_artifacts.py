import stat

import pytest

from certprov.common.errors import StorageError
from certprov.storage.artifacts import (
    artifact_paths,
    commit,
    csr_path,
    ensure_directory,
    issuance_lock,
    stage_file,
)


def test_paths_are_derived_from_domain(tmp_path):
    artifacts = artifact_paths(tmp_path, "grafana.lan")

    assert artifacts.directory == tmp_path / "grafana.lan"
    assert artifacts.key_path.name == "grafana.lan.key.pem"
    assert artifacts.cert_path.name == "grafana.lan.crt.pem"
    assert csr_path(artifacts) == tmp_path / "grafana.lan" / "grafana.lan.csr.pem"
    assert not artifacts.exists()


def test_distinct_domains_never_share_a_directory(tmp_path):
    a = artifact_paths(tmp_path, "a.local")
    b = artifact_paths(tmp_path, "b.local")
    assert a.directory != b.directory


def test_lock_is_exclusive_per_domain(tmp_path):
    ensure_directory(tmp_path / "svc.local")
    ensure_directory(tmp_path / "other.local")

    with issuance_lock(tmp_path / "svc.local"):
        with pytest.raises(StorageError, match="in progress"):
            with issuance_lock(tmp_path / "svc.local"):
                pass
        with issuance_lock(tmp_path / "other.local"):
            pass

    with issuance_lock(tmp_path / "svc.local"):
        pass


def test_ensure_directory_reports_path(tmp_path):
    blocker = tmp_path / "issued"
    blocker.write_text("a file, not a directory")

    with pytest.raises(StorageError) as exc:
        ensure_directory(blocker / "svc.local")
    assert exc.value.path == blocker / "svc.local"


def test_stage_and_commit(tmp_path):
    target = tmp_path / "svc.local.key.pem"
    target.write_bytes(b"old")

    staged = stage_file(tmp_path, ".key.pem", b"new", mode=0o600)
    assert staged.name.startswith(".staged-")
    assert stat.S_IMODE(staged.stat().st_mode) == 0o600
    assert target.read_bytes() == b"old"

    commit(staged, target)
    assert target.read_bytes() == b"new"
    assert not staged.exists()
