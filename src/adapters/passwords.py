"""
Password hashing shared by the account directory adapters.

bcrypt.checkpw() always runs, against a dummy hash when the account is
unknown, so response time does not reveal whether an email exists.
bcrypt only accepts passwords up to 72 bytes; longer input never matches.
"""

import bcrypt

BCRYPT_MAX_PASSWORD_BYTES = 72

# Hash of a throwaway value; compared against when no stored hash exists.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10))


def hash_password(password: str, rounds: int = 10) -> str:
    """
    Raises:
        ValueError: If the password exceeds 72 bytes once UTF-8 encoded
    """
    encoded = password.encode()
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValueError(f"Password exceeds {BCRYPT_MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode()


def check_password(password: str, stored_hash: str | None) -> bool:
    """Constant-time check; False when no hash is stored or the password is too long."""
    encoded = password.encode()
    acceptable = len(encoded) <= BCRYPT_MAX_PASSWORD_BYTES
    candidate = stored_hash.encode() if stored_hash is not None else _DUMMY_BCRYPT_HASH
    # Truncated input keeps the bcrypt cost on the rejection path
    matched = bcrypt.checkpw(encoded[:BCRYPT_MAX_PASSWORD_BYTES], candidate)
    return matched and acceptable and stored_hash is not None
