"""Create a local Root CA (RSA + self-signed X.509) in the layout the issuer expects."""

import logging
import os
from datetime import timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certprov.common.config import CAContext, IssuancePolicy
from certprov.common.errors import StorageError
from certprov.common.utils import now_utc
from certprov.storage.artifacts import ensure_directory

logger = logging.getLogger(__name__)


def create_root_ca(
    ca_dir: Path,
    name: str = "Homelab Root CA",
    policy: IssuancePolicy = IssuancePolicy(),
    valid_days: int = 3650,
    key_size: int = 4096,
    overwrite: bool = False,
) -> CAContext:
    """
    Create a root CA with RSA keypair and self-signed X.509 certificate.

    Writes <ca_dir>/rootCA.crt.pem and <ca_dir>/private/rootCA.key.pem.

    Args:
        ca_dir: CA base directory
        name: Common Name for the CA
        policy: Supplies the C/ST/O subject fields
        valid_days: CA lifetime
        key_size: RSA modulus size
        overwrite: Replace an existing CA instead of refusing

    Returns:
        CAContext pointing at the new files

    Raises:
        StorageError: If a CA already exists (and overwrite is False) or
            the files cannot be written
    """
    ca = CAContext.from_ca_dir(ca_dir)
    if not overwrite and (ca.cert_path.exists() or ca.key_path.exists()):
        raise StorageError("A CA already exists", ca_dir)

    ensure_directory(ca.key_path.parent)
    try:
        os.chmod(ca.key_path.parent, 0o700)
    except OSError as e:
        raise StorageError(f"Cannot restrict CA key directory ({e.strerror})", ca.key_path.parent) from e

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, policy.country),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, policy.state),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, policy.organization),
        x509.NameAttribute(NameOID.COMMON_NAME, name),
    ])

    now = now_utc()
    cert = x509.CertificateBuilder().subject_name(
        subject
    ).issuer_name(
        issuer
    ).public_key(
        private_key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        now - timedelta(minutes=5)
    ).not_valid_after(
        now + timedelta(days=valid_days)
    ).add_extension(
        x509.BasicConstraints(ca=True, path_length=0),
        critical=True,
    ).add_extension(
        x509.KeyUsage(
            key_cert_sign=True,
            crl_sign=True,
            digital_signature=True,
            key_encipherment=False,
            content_commitment=False,
            data_encipherment=False,
            key_agreement=False,
            encipher_only=False,
            decipher_only=False,
        ),
        critical=True,
    ).add_extension(
        x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
        critical=False,
    ).sign(private_key, hashes.SHA256())

    try:
        with open(ca.key_path, "wb") as f:
            f.write(private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption()
            ))
        os.chmod(ca.key_path, 0o600)

        with open(ca.cert_path, "wb") as f:
            f.write(cert.public_bytes(serialization.Encoding.PEM))
    except OSError as e:
        raise StorageError(f"Cannot write CA files ({e.strerror})", ca_dir) from e

    logger.info("Root CA '%s' written to %s", name, ca_dir)
    return ca
