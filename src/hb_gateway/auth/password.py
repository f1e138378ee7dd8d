"""bcrypt password hashing.

The cost factor comes from BCRYPT_ROUNDS. bcrypt only reads the first 72
bytes; RegisterRequest caps password length well below that.
"""

import bcrypt

from config.settings import settings


def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """False on mismatch, and also when the stored hash is malformed."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
