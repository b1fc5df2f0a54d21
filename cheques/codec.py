"""
OTP codec: code generation and keyed hashing. Pure functions, no state.
"""

import hashlib
import hmac
import secrets

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code():
    """Return a 6-digit code drawn from the OS CSPRNG."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def hash_code(code, secret):
    """HMAC-SHA256 of the code under the server-side secret, hex encoded."""
    return hmac.new(secret.encode(), str(code).strip().encode(), hashlib.sha256).hexdigest()


def codes_match(code, stored_hash, secret):
    return hmac.compare_digest(hash_code(code, secret), stored_hash)
