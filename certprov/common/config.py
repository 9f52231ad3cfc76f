"""Immutable runtime configuration: CA location, issuance policy, nginx paths.

Defaults match a homelab install:

    /etc/local-ca/rootCA.crt.pem
    /etc/local-ca/private/rootCA.key.pem
    /etc/local-ca/issued/<domain>/...
    /etc/nginx/sites-available/<domain>
    /etc/nginx/sites-enabled/<domain>

Every value can be overridden from the environment (see `from_env`).
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from certprov.common.errors import PreconditionError

MIN_KEY_SIZE = 2048


@dataclass(frozen=True)
class CAContext:
    """Trust anchor paths. Read only; never created or modified here."""
    cert_path: Path
    key_path: Path

    @classmethod
    def from_ca_dir(cls, ca_dir: Path) -> "CAContext":
        return cls(
            cert_path=ca_dir / "rootCA.crt.pem",
            key_path=ca_dir / "private" / "rootCA.key.pem",
        )


@dataclass(frozen=True)
class IssuancePolicy:
    validity_days: int = 825
    country: str = "US"
    state: str = "Homelab"
    organization: str = "Slade Services"
    key_size: int = 2048

    def __post_init__(self):
        if self.validity_days <= 0:
            raise ValueError(f"validity_days must be positive, got {self.validity_days}")
        if self.key_size < MIN_KEY_SIZE:
            raise ValueError(f"key_size must be at least {MIN_KEY_SIZE}, got {self.key_size}")
        if len(self.country) != 2:
            raise ValueError(f"country must be a two-letter code, got {self.country!r}")


@dataclass(frozen=True)
class NginxSettings:
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    reload: bool = True


@dataclass(frozen=True)
class ProvisionerConfig:
    ca_dir: Path = Path("/etc/local-ca")
    policy: IssuancePolicy = field(default_factory=IssuancePolicy)
    nginx: NginxSettings = field(default_factory=NginxSettings)
    require_root: bool = True

    @property
    def ca(self) -> CAContext:
        return CAContext.from_ca_dir(self.ca_dir)

    @property
    def issued_root(self) -> Path:
        return self.ca_dir / "issued"

    @classmethod
    def from_env(cls) -> "ProvisionerConfig":
        """Load config from environment variables with homelab defaults."""
        try:
            policy = IssuancePolicy(
                validity_days=int(os.getenv("PROXYCERT_DAYS_VALID", "825")),
                country=os.getenv("PROXYCERT_COUNTRY", "US"),
                state=os.getenv("PROXYCERT_STATE", "Homelab"),
                organization=os.getenv("PROXYCERT_ORG", "Slade Services"),
                key_size=int(os.getenv("PROXYCERT_KEY_SIZE", "2048")),
            )
            nginx = NginxSettings(
                sites_available=Path(os.getenv("NGINX_SITES_AVAILABLE", "/etc/nginx/sites-available")),
                sites_enabled=Path(os.getenv("NGINX_SITES_ENABLED", "/etc/nginx/sites-enabled")),
                reload=_env_flag("PROXYCERT_RELOAD_NGINX", True),
            )
            return cls(
                ca_dir=Path(os.getenv("PROXYCERT_CA_DIR", "/etc/local-ca")),
                policy=policy,
                nginx=nginx,
                require_root=_env_flag("PROXYCERT_REQUIRE_ROOT", True),
            )
        except ValueError as e:
            raise PreconditionError(f"Invalid configuration: {e}") from e

    def with_overrides(
        self,
        ca_dir: Optional[Path] = None,
        validity_days: Optional[int] = None,
        reload: Optional[bool] = None,
    ) -> "ProvisionerConfig":
        """Return a copy with command-line overrides applied."""
        config = self
        try:
            if ca_dir is not None:
                config = replace(config, ca_dir=ca_dir)
            if validity_days is not None:
                config = replace(config, policy=replace(config.policy, validity_days=validity_days))
            if reload is not None:
                config = replace(config, nginx=replace(config.nginx, reload=reload))
        except ValueError as e:
            raise PreconditionError(f"Invalid configuration: {e}") from e
        return config


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")
