"""X.509 helpers: load CA credentials, inspect CN/SAN, check key/cert consistency."""

from pathlib import Path
from typing import List, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes, PublicKeyTypes
from cryptography.x509.oid import ExtensionOID, NameOID

from certprov.common.config import CAContext
from certprov.common.errors import CryptoError, PreconditionError


def check_ca_context(ca: CAContext) -> None:
    """
    Make sure both CA files exist before any issuance work starts.

    Raises:
        PreconditionError: If the CA certificate or key is missing
    """
    if not ca.cert_path.is_file():
        raise PreconditionError(f"CA certificate not found at {ca.cert_path}")
    if not ca.key_path.is_file():
        raise PreconditionError(f"CA private key not found at {ca.key_path}")


def load_certificate(cert_path: Path) -> x509.Certificate:
    """Load an X.509 certificate from a PEM file."""
    with open(cert_path, "rb") as f:
        return x509.load_pem_x509_certificate(f.read())


def load_private_key(key_path: Path) -> PrivateKeyTypes:
    """Load an unencrypted private key from a PEM file."""
    with open(key_path, "rb") as f:
        return serialization.load_pem_private_key(f.read(), password=None)


def load_ca_credentials(ca: CAContext) -> Tuple[PrivateKeyTypes, x509.Certificate]:
    """
    Load and cross-check the CA key and certificate.

    Args:
        ca: CA certificate and key locations

    Returns:
        (ca_private_key, ca_certificate)

    Raises:
        PreconditionError: If either file is missing
        CryptoError: If a file cannot be parsed or key and cert do not belong together
    """
    check_ca_context(ca)

    try:
        ca_key = load_private_key(ca.key_path)
    except (OSError, ValueError, TypeError) as e:
        raise CryptoError("load-ca-key", f"CA private key unreadable at {ca.key_path}: {e}") from e

    try:
        ca_cert = load_certificate(ca.cert_path)
    except (OSError, ValueError) as e:
        raise CryptoError("load-ca-cert", f"CA certificate unreadable at {ca.cert_path}: {e}") from e

    if not public_keys_match(ca_cert.public_key(), ca_key.public_key()):
        raise CryptoError(
            "ca-mismatch",
            f"CA private key {ca.key_path} does not match certificate {ca.cert_path}",
        )

    return ca_key, ca_cert


def public_keys_match(a: PublicKeyTypes, b: PublicKeyTypes) -> bool:
    """Compare two public keys by their SubjectPublicKeyInfo encoding."""
    fmt = serialization.PublicFormat.SubjectPublicKeyInfo
    return a.public_bytes(serialization.Encoding.DER, fmt) == b.public_bytes(serialization.Encoding.DER, fmt)


def key_matches_certificate(key: PrivateKeyTypes, cert: x509.Certificate) -> bool:
    return public_keys_match(key.public_key(), cert.public_key())


def get_certificate_cn(cert: x509.Certificate) -> str:
    """
    Extract Common Name (CN) from certificate subject.

    Raises:
        ValueError: If the subject has no CN
    """
    cn_attr = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not cn_attr:
        raise ValueError("Certificate has no Common Name (CN)")
    return cn_attr[0].value


def get_san_dns_names(cert: x509.Certificate) -> List[str]:
    """Return the DNS entries of the SubjectAlternativeName extension ([] if absent)."""
    try:
        san = cert.extensions.get_extension_for_oid(ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
    except x509.ExtensionNotFound:
        return []
    return san.value.get_values_for_type(x509.DNSName)


def is_issued_by(cert: x509.Certificate, ca_cert: x509.Certificate) -> bool:
    """True if `cert` names `ca_cert` as issuer and carries a valid CA signature."""
    try:
        cert.verify_directly_issued_by(ca_cert)
        return True
    except (ValueError, TypeError, InvalidSignature):
        return False


def certificate_fingerprint(cert: x509.Certificate) -> str:
    """Return the SHA-256 fingerprint of the certificate as a hex string."""
    return cert.fingerprint(hashes.SHA256()).hex()
