"""
Discharge Portal - Password Hashing Utilities

bcrypt hashing for portal accounts. The cost factor comes from
Settings.BCRYPT_ROUNDS (never below 10).

Security:
- Never log or expose plaintext passwords
- bcrypt includes salt automatically
- Weak hashes are upgraded on the next successful login
"""

import bcrypt


DEFAULT_ROUNDS = 12
MIN_ROUNDS = 10

# bcrypt hashes start with $2a$, $2b$ or $2y$ and are 60 characters long
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plaintext password
        rounds: bcrypt cost factor

    Returns:
        bcrypt hash string (includes salt)

    Example:
        >>> hash_password("Discharge#2024", rounds=10).startswith("$2b$10$")
        True
    """
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Check a password against a stored bcrypt hash.

    Returns False, never raises, for an empty or malformed stored hash.
    """
    if not is_valid_bcrypt_hash(hashed_password):
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except (ValueError, TypeError):
        return False


def hash_rounds(hashed_password: str) -> int:
    """Cost factor encoded in a bcrypt hash ($2b$XX$...), 0 if unreadable."""
    try:
        return int(hashed_password.split("$")[2])
    except (ValueError, IndexError, AttributeError):
        return 0


def needs_rehash(hashed_password: str, target_rounds: int = DEFAULT_ROUNDS) -> bool:
    """
    Whether a stored hash is weaker than the configured cost factor.

    Example:
        # After raising BCRYPT_ROUNDS from 10 to 12:
        >>> needs_rehash(old_hash, target_rounds=12)  # hashed with 10
        True
    """
    return hash_rounds(hashed_password) < target_rounds


def is_valid_bcrypt_hash(hash_string: str) -> bool:
    if not hash_string or not isinstance(hash_string, str):
        return False
    return hash_string.startswith(_BCRYPT_PREFIXES) and len(hash_string) == 60
