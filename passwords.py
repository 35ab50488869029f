import os
import secrets

import bcrypt


def hash_password(plain: str) -> str:
    rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def generate_password() -> str:
    """Random 8-digit numeric password handed to new members once."""
    return str(10_000_000 + secrets.randbelow(90_000_000))
