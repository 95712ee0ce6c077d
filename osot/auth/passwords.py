"""Password hashing (PBKDF2-SHA256) for account records."""

import hashlib
import hmac
import secrets

ITERATIONS = 100_000
_PREFIX = "pbkdf2:sha256:"


def hash_password(password: str, iterations: int = ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"{_PREFIX}{iterations}${salt}${dk.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash or not password_hash.startswith(_PREFIX):
        return False
    parts = password_hash.split("$")
    if len(parts) != 3:
        return False
    header, salt, stored = parts
    try:
        iterations = int(header.split(":")[2])
    except (IndexError, ValueError):
        return False
    dk = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return hmac.compare_digest(dk.hex(), stored)


def is_hashed(value: str) -> bool:
    return bool(value) and value.startswith(_PREFIX)
