from pathlib import Path

import pytest

from certprov.common.config import CAContext, IssuancePolicy, ProvisionerConfig
from certprov.common.errors import PreconditionError

ENV_VARS = (
    "PROXYCERT_CA_DIR",
    "PROXYCERT_DAYS_VALID",
    "PROXYCERT_COUNTRY",
    "PROXYCERT_STATE",
    "PROXYCERT_ORG",
    "PROXYCERT_KEY_SIZE",
    "PROXYCERT_RELOAD_NGINX",
    "PROXYCERT_REQUIRE_ROOT",
    "NGINX_SITES_AVAILABLE",
    "NGINX_SITES_ENABLED",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    config = ProvisionerConfig.from_env()

    assert config.ca == CAContext(
        cert_path=Path("/etc/local-ca/rootCA.crt.pem"),
        key_path=Path("/etc/local-ca/private/rootCA.key.pem"),
    )
    assert config.issued_root == Path("/etc/local-ca/issued")
    assert config.policy == IssuancePolicy(825, "US", "Homelab", "Slade Services", 2048)
    assert config.nginx.sites_available == Path("/etc/nginx/sites-available")
    assert config.nginx.sites_enabled == Path("/etc/nginx/sites-enabled")
    assert config.nginx.reload is True
    assert config.require_root is True


def test_environment_overrides(clean_env):
    clean_env.setenv("PROXYCERT_CA_DIR", "/srv/ca")
    clean_env.setenv("PROXYCERT_DAYS_VALID", "90")
    clean_env.setenv("PROXYCERT_ORG", "Lab")
    clean_env.setenv("PROXYCERT_RELOAD_NGINX", "no")
    clean_env.setenv("NGINX_SITES_ENABLED", "/tmp/enabled")

    config = ProvisionerConfig.from_env()
    assert config.ca.key_path == Path("/srv/ca/private/rootCA.key.pem")
    assert config.policy.validity_days == 90
    assert config.policy.organization == "Lab"
    assert config.nginx.reload is False
    assert config.nginx.sites_enabled == Path("/tmp/enabled")


@pytest.mark.parametrize("name,value", [
    ("PROXYCERT_DAYS_VALID", "soon"),
    ("PROXYCERT_DAYS_VALID", "0"),
    ("PROXYCERT_KEY_SIZE", "1024"),
    ("PROXYCERT_COUNTRY", "USA"),
    ("PROXYCERT_REQUIRE_ROOT", "maybe"),
])
def test_invalid_environment(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(PreconditionError, match="Invalid configuration"):
        ProvisionerConfig.from_env()


def test_overrides_return_new_config():
    base = ProvisionerConfig()
    changed = base.with_overrides(ca_dir=Path("/opt/ca"), validity_days=30, reload=False)

    assert base.ca_dir == Path("/etc/local-ca")
    assert changed.ca_dir == Path("/opt/ca")
    assert changed.policy.validity_days == 30
    assert changed.policy.country == "US"
    assert changed.nginx.reload is False
    assert base.with_overrides() == base


def test_invalid_override():
    with pytest.raises(PreconditionError):
        ProvisionerConfig().with_overrides(validity_days=-1)
