from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def colon_hex(hex_digest: str) -> str:
    """Format a hex digest as AA:BB:CC... (openssl fingerprint style)."""
    return ":".join(hex_digest[i:i + 2] for i in range(0, len(hex_digest), 2)).upper()
