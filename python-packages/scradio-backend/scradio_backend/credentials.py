"""Host credential generation and verification."""

import hashlib
import hmac
import secrets


def generate_host_secret() -> str:
    """Return a new URL-safe host secret (32 random bytes)."""
    return secrets.token_urlsafe(32)


def hash_host_secret(secret: str, pepper: str = "") -> str:
    """One-way hash of a host secret, as stored in ``host_secret_hash``.

    SHA-256 hex of ``"secret:pepper"``.
    """
    payload = f"{secret}:{pepper}"
    return hashlib.sha256(payload.encode()).hexdigest()


def safe_secret_match(secret: str, hash_hex: str, pepper: str = "") -> bool:
    """Check a presented secret against a stored hash in constant time."""
    try:
        candidate = bytes.fromhex(hash_host_secret(secret, pepper))
        actual = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    return hmac.compare_digest(candidate, actual)
