import shutil

import pytest

from certprov.common.config import NginxSettings, ProvisionerConfig
from certprov.common.models import IssuanceRequest
from certprov.crypto.ca import create_root_ca


@pytest.fixture(scope="session")
def ca_template(tmp_path_factory):
    ca_dir = tmp_path_factory.mktemp("ca-template")
    create_root_ca(ca_dir, name="Test Root CA", key_size=2048)
    return ca_dir


@pytest.fixture
def ca_dir(tmp_path, ca_template):
    target = tmp_path / "local-ca"
    shutil.copytree(ca_template, target)
    return target


@pytest.fixture
def config(tmp_path, ca_dir):
    available = tmp_path / "sites-available"
    enabled = tmp_path / "sites-enabled"
    available.mkdir()
    enabled.mkdir()
    return ProvisionerConfig(
        ca_dir=ca_dir,
        nginx=NginxSettings(sites_available=available, sites_enabled=enabled, reload=False),
        require_root=False,
    )


@pytest.fixture
def request_for():
    def make(domain="svc.local", upstream="http://svc.local:8080", overwrite=False):
        return IssuanceRequest(domain=domain, upstream_target=upstream, overwrite=overwrite)
    return make
