"""Bootstrap a local Root CA in the layout issue-local-cert expects."""

import argparse
import sys
from pathlib import Path

from certprov.common.config import ProvisionerConfig
from certprov.common.errors import ProvisionError
from certprov.crypto.ca import create_root_ca
from certprov.crypto.pki import certificate_fingerprint, load_certificate


def main():
    parser = argparse.ArgumentParser(description="Create Root CA")
    parser.add_argument(
        "--name",
        type=str,
        default="Homelab Root CA",
        help="Common Name for the CA"
    )
    parser.add_argument(
        "--ca-dir",
        type=str,
        default=None,
        help="CA base directory (default: $PROXYCERT_CA_DIR or /etc/local-ca)"
    )
    parser.add_argument(
        "--valid-days",
        type=int,
        default=3650,
        help="CA validity period in days (default: 3650)"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Replace an existing CA"
    )
    args = parser.parse_args()

    try:
        config = ProvisionerConfig.from_env()
        ca_dir = Path(args.ca_dir) if args.ca_dir else config.ca_dir
        ca = create_root_ca(
            ca_dir,
            name=args.name,
            policy=config.policy,
            valid_days=args.valid_days,
            overwrite=args.force,
        )
    except ProvisionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code

    cert = load_certificate(ca.cert_path)
    print(f"[OK] Root CA '{args.name}' created successfully!")
    print(f"  Certificate: {ca.cert_path}")
    print(f"  Private Key: {ca.key_path}")
    print(f"  Valid until: {cert.not_valid_after_utc}")
    print(f"  SHA-256: {certificate_fingerprint(cert)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
