"""bcrypt helpers for API key storage.

bcrypt hashes are salted and slow to compute; checkpw compares in
constant time. Both calls are CPU-bound and run in worker threads so the
event loop keeps serving other requests.
"""

from __future__ import annotations

import asyncio

import bcrypt

MIN_ROUNDS = 4
MAX_ROUNDS = 16
DEFAULT_ROUNDS = 12

# bcrypt only reads the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def _encode(secret: str) -> bytes:
    return secret.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_secret(secret: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return the bcrypt hash of secret with the given work factor."""
    return bcrypt.hashpw(_encode(secret), bcrypt.gensalt(rounds=rounds)).decode()


def check_secret(secret: str, hashed: str) -> bool:
    """Compare secret against a stored hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(_encode(secret), hashed.encode())
    except ValueError:
        return False


async def hash_secret_async(secret: str, rounds: int = DEFAULT_ROUNDS) -> str:
    return await asyncio.to_thread(hash_secret, secret, rounds)


async def check_secret_async(secret: str, hashed: str) -> bool:
    return await asyncio.to_thread(check_secret, secret, hashed)
