"""Password hashing and verification.

Hashing uses pwdlib's recommended configuration (Argon2id with a random
salt per hash). Verification is constant time inside the hasher and never
raises for a bad or unrecognised hash.
"""

from pwdlib import PasswordHash
from pwdlib.exceptions import UnknownHashError

from tokenward.core.logging import logger

password_hash = PasswordHash.recommended()


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verify a plain password against a stored hash.

    Args:
        plain_password: The clear-text password provided by the user.
        hashed_password: The stored password hash to verify against.

    Returns:
        bool: True if the password matches, False otherwise (including
            when the stored hash is empty or in an unknown format).
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return password_hash.verify(plain_password, hashed_password)
    except UnknownHashError:
        logger.warning("Stored password hash has an unrecognised format")
        return False


def get_password_hash(password: str) -> str:
    """Hash a plain password using the recommended algorithm.

    Args:
        password: Plain-text password to hash.

    Returns:
        str: The resulting password hash.
    """
    return password_hash.hash(password)
