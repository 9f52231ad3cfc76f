"""On-disk layout of issued artifacts, per-domain locking and staged writes.

Layout under the issued root:

    <issued_root>/<domain>/<domain>.key.pem   private key (0600)
    <issued_root>/<domain>/<domain>.crt.pem   signed certificate
    <issued_root>/<domain>/<domain>.csr.pem   signing request, transient
    <issued_root>/<domain>/.issue.lock        flock target

New files are first written to hidden temp files in the domain directory
and moved into place with os.replace, so an existing key/cert pair is only
replaced once the new pair is complete.
"""

import fcntl
import logging
import os
import secrets
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from certprov.common.errors import StorageError
from certprov.common.models import ArtifactSet

logger = logging.getLogger(__name__)

LOCK_NAME = ".issue.lock"


def artifact_paths(issued_root: Path, domain: str) -> ArtifactSet:
    """Derive the key and certificate paths for `domain`."""
    directory = issued_root / domain
    return ArtifactSet(
        key_path=directory / f"{domain}.key.pem",
        cert_path=directory / f"{domain}.crt.pem",
    )


def csr_path(artifacts: ArtifactSet) -> Path:
    """Path of the transient signing request next to the certificate."""
    directory = artifacts.directory
    return directory / f"{directory.name}.csr.pem"


def ensure_directory(directory: Path) -> None:
    """Create `directory` (and parents) if needed."""
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError(f"Cannot create directory ({e.strerror})", directory) from e


@contextmanager
def issuance_lock(directory: Path) -> Iterator[None]:
    """
    Hold an exclusive, non-blocking flock on the domain directory's lock file.

    The kernel drops the lock when the process exits, so a crashed run
    never leaves the domain locked.

    Raises:
        StorageError: If the lock file cannot be opened or another
            issuance for the same domain holds the lock
    """
    lock_path = directory / LOCK_NAME
    try:
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as e:
        raise StorageError(f"Cannot open lock file ({e.strerror})", lock_path) from e

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise StorageError("Another issuance for this domain is in progress", lock_path) from e
        logger.debug("Acquired issuance lock %s", lock_path)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def stage_file(directory: Path, suffix: str, data: bytes, mode: int = 0o644) -> Path:
    """
    Write `data` to a new hidden temp file inside `directory`.

    Returns:
        Path of the staged file (caller commits or discards it)
    """
    try:
        fd, name = tempfile.mkstemp(dir=directory, prefix=".staged-", suffix=suffix)
    except OSError as e:
        raise StorageError(f"Cannot create staging file ({e.strerror})", directory) from e

    staged = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(staged, mode)
    except OSError as e:
        discard(staged)
        raise StorageError(f"Cannot write staging file ({e.strerror})", staged) from e
    return staged


def commit(staged: Path, target: Path) -> None:
    """Atomically move a staged file onto its final path."""
    try:
        os.replace(staged, target)
    except OSError as e:
        raise StorageError(f"Cannot move {staged.name} into place ({e.strerror})", target) from e


def commit_pair(staged_key: Path, staged_cert: Path, artifacts: ArtifactSet) -> None:
    """
    Move a staged key and certificate into place as one unit.

    The current key is hard-linked to a backup first; if the certificate
    cannot be moved, the backup goes back so the old pair stays matched.
    Without a previous key, the new key is removed instead.
    """
    key_path = artifacts.key_path
    backup = None
    if key_path.exists():
        backup = key_path.parent / f".staged-{secrets.token_hex(8)}.key.pem.bak"
        try:
            os.link(key_path, backup)
        except OSError as e:
            raise StorageError(f"Cannot back up existing key ({e.strerror})", key_path) from e

    try:
        commit(staged_key, key_path)
        commit(staged_cert, artifacts.cert_path)
    except StorageError:
        try:
            if backup is not None:
                os.replace(backup, key_path)
            else:
                key_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Could not restore %s: %s", key_path, e.strerror)
        raise
    finally:
        if backup is not None:
            discard(backup)


def discard(path: Path) -> None:
    """Best-effort removal of a transient file."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e.strerror)


def remove_stale_csr(artifacts: ArtifactSet) -> None:
    """Remove a signing request left behind by an interrupted run."""
    stale = csr_path(artifacts)
    if stale.exists():
        logger.info("Removing stale signing request %s", stale)
        discard(stale)
