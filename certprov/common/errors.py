"""Error taxonomy for certificate provisioning.

Every error carries the process exit code the CLI should return for it.
"""

from pathlib import Path
from typing import Optional


class ProvisionError(Exception):
    """Base exception for provisioning failures."""
    exit_code = 1


class PreconditionError(ProvisionError):
    """CA trust material missing or insufficient privilege."""
    pass


class ValidationError(ProvisionError):
    """Missing or malformed domain / proxy target."""
    exit_code = 2


class UserAbort(ProvisionError):
    """Overwrite of existing artifacts was declined."""
    exit_code = 3


class StorageError(ProvisionError):
    """Directory or file could not be created or written."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        if path is not None:
            message = f"{message}: {path}"
        super().__init__(message)


class CryptoError(ProvisionError):
    """Key generation, CSR construction or CA signing failed.

    `step` names the failing stage (generate-key, build-csr, load-ca-key,
    load-ca-cert, ca-mismatch, sign) since each needs a different fix.
    """

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"[{step}] {message}")


class ActivationError(ProvisionError):
    """nginx config test or reload failed."""
    pass
