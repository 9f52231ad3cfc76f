"""Issue a server certificate signed by the local Root CA (SAN=DNSName(domain))."""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from certprov.common.config import CAContext, IssuancePolicy
from certprov.common.errors import CryptoError, StorageError
from certprov.common.models import ArtifactSet, IssuanceRequest
from certprov.common.utils import now_utc
from certprov.crypto.pki import certificate_fingerprint, load_ca_credentials
from certprov.storage.artifacts import (
    artifact_paths,
    commit_pair,
    csr_path,
    discard,
    ensure_directory,
    issuance_lock,
    remove_stale_csr,
    stage_file,
)

logger = logging.getLogger(__name__)


def generate_private_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """Generate an RSA key for the leaf certificate."""
    try:
        return rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    except (ValueError, TypeError) as e:
        raise CryptoError("generate-key", f"RSA-{key_size} key generation failed: {e}") from e


def private_key_pem(key: PrivateKeyTypes) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def build_subject(domain: str, policy: IssuancePolicy) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, policy.country),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, policy.state),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, policy.organization),
        x509.NameAttribute(NameOID.COMMON_NAME, domain),
    ])


def build_csr(
    key: PrivateKeyTypes,
    domain: str,
    policy: IssuancePolicy,
) -> x509.CertificateSigningRequest:
    """Build a signing request for `domain`, signed by the new key."""
    try:
        return (
            x509.CertificateSigningRequestBuilder()
            .subject_name(build_subject(domain, policy))
            .sign(key, hashes.SHA256())
        )
    except (ValueError, TypeError) as e:
        raise CryptoError("build-csr", f"Cannot build signing request for {domain}: {e}") from e


def sign_csr(
    csr: x509.CertificateSigningRequest,
    ca_key: PrivateKeyTypes,
    ca_cert: x509.Certificate,
    domain: str,
    validity_days: int,
    now: Optional[datetime] = None,
) -> x509.Certificate:
    """
    Sign a CSR with the CA key.

    The certificate carries exactly one SAN DNS entry, `domain`; clients
    ignore the CN for hostname checks so the SAN is what makes it usable.

    Args:
        csr: Signing request bound to the leaf key
        ca_key: CA private key
        ca_cert: CA certificate (issuer name and key identifier source)
        domain: DNS name for the SAN extension
        validity_days: Lifetime counted from `now`
        now: Signing time (defaults to the current UTC time)

    Raises:
        CryptoError: If the CSR signature is invalid or signing fails
    """
    if not csr.is_signature_valid:
        raise CryptoError("sign", "Signing request signature is invalid")

    now = now or now_utc()
    builder = (
        x509.CertificateBuilder()
        .subject_name(csr.subject)
        .issuer_name(ca_cert.subject)
        .public_key(csr.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(domain)]),
            critical=False,
        )
        .add_extension(
            x509.BasicConstraints(ca=False, path_length=None),
            critical=True,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=True,
                key_agreement=False,
                content_commitment=False,
                data_encipherment=False,
                encipher_only=False,
                decipher_only=False,
                key_cert_sign=False,
                crl_sign=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
            critical=False,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(csr.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_cert.public_key()),
            critical=False,
        )
    )

    try:
        return builder.sign(ca_key, hashes.SHA256())
    except (ValueError, TypeError) as e:
        raise CryptoError("sign", f"CA rejected signing request for {domain}: {e}") from e


def _write_csr(path: Path, csr: x509.CertificateSigningRequest) -> None:
    try:
        with open(path, "wb") as f:
            f.write(csr.public_bytes(serialization.Encoding.PEM))
    except OSError as e:
        raise StorageError(f"Cannot write signing request ({e.strerror})", path) from e


def _read_csr(path: Path) -> x509.CertificateSigningRequest:
    try:
        with open(path, "rb") as f:
            return x509.load_pem_x509_csr(f.read())
    except OSError as e:
        raise StorageError(f"Cannot read signing request ({e.strerror})", path) from e
    except ValueError as e:
        raise CryptoError("build-csr", f"Signing request at {path} is unreadable: {e}") from e


def issue(
    request: IssuanceRequest,
    ca: CAContext,
    policy: IssuancePolicy,
    issued_root: Path,
) -> ArtifactSet:
    """
    Issue a key and certificate for `request.domain` signed by the CA.

    The CA is loaded before anything touches the issued tree, so a broken
    CA leaves no per-domain directory behind. The new key and certificate
    are staged and only moved over an existing pair once both are ready.
    Existing artifacts are re-checked under the lock: if another run
    created them after the request was resolved, issuance stops unless
    the request carries a confirmed overwrite.

    Returns:
        ArtifactSet with paths plus serial, validity window and fingerprint

    Raises:
        PreconditionError: CA files missing
        StorageError: Directory, lock or file write failure
        CryptoError: Key generation, CSR or signing failure
    """
    ca_key, ca_cert = load_ca_credentials(ca)

    artifacts = artifact_paths(issued_root, request.domain)
    ensure_directory(artifacts.directory)

    with issuance_lock(artifacts.directory):
        if artifacts.exists() and not request.overwrite:
            raise StorageError(
                "Certificate appeared while this request was pending; rerun to confirm overwrite",
                artifacts.directory,
            )
        remove_stale_csr(artifacts)
        request_path = csr_path(artifacts)
        staged: List[Path] = []
        try:
            logger.info("Generating private key...")
            key = generate_private_key(policy.key_size)
            staged_key = stage_file(artifacts.directory, ".key.pem", private_key_pem(key), mode=0o600)
            staged.append(staged_key)

            logger.info("Generating CSR...")
            _write_csr(request_path, build_csr(key, request.domain, policy))

            logger.info("Signing certificate with local CA...")
            cert = sign_csr(_read_csr(request_path), ca_key, ca_cert, request.domain, policy.validity_days)
            staged_cert = stage_file(
                artifacts.directory,
                ".crt.pem",
                cert.public_bytes(serialization.Encoding.PEM),
            )
            staged.append(staged_cert)

            commit_pair(staged_key, staged_cert, artifacts)
        finally:
            for path in staged:
                discard(path)
            discard(request_path)

    logger.info("Issued certificate for %s (serial %x)", request.domain, cert.serial_number)
    return artifacts.model_copy(update={
        "serial_number": cert.serial_number,
        "not_valid_before": cert.not_valid_before_utc,
        "not_valid_after": cert.not_valid_after_utc,
        "fingerprint": certificate_fingerprint(cert),
    })
