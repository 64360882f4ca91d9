"""
CryptoWallet Password Hashing
==============================
PBKDF2-HMAC-SHA256 password hashing used by the development server.
Stored form is "salt_hex:key_hex".
"""

import hmac
import secrets

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


KEY_SIZE          = 32
SALT_SIZE         = 32
PBKDF2_ITERATIONS = 100_000


def derive_key_from_password(password: str, salt: bytes,
                             iterations: int = PBKDF2_ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations
    )
    return kdf.derive(password.encode())


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Returns 'salt_hex:key_hex'. Random salt per hash."""
    salt = secrets.token_bytes(SALT_SIZE)
    key  = derive_key_from_password(password, salt, iterations)
    return f"{salt.hex()}:{key.hex()}"


def verify_password(password: str, stored_hash: str,
                    iterations: int = PBKDF2_ITERATIONS) -> bool:
    """Constant-time comparison. A malformed stored hash never verifies."""
    try:
        salt_hex, key_hex = stored_hash.split(":")
        salt     = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(key_hex)
    except ValueError:
        return False
    derived = derive_key_from_password(password, salt, iterations)
    return hmac.compare_digest(derived, expected)
