"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks.
The work factor is configurable (TASKHUB_BCRYPT_ROUNDS, default 12,
~100ms per hash on modern hardware).

Hashing is CPU-bound, so the async helpers push it onto a worker thread.
One slow login never stalls the event loop for every other request.

Hashes produced with an older work factor are re-hashed on the next
successful login (see needs_rehash).
"""

import asyncio

import bcrypt


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password with bcrypt.

    Learn: bcrypt includes a random salt automatically and produces
    hashes starting with "$2b$". Passwords are truncated to 72 bytes
    (bcrypt's limit).
    """
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash (constant-time inside bcrypt)."""
    try:
        pw_bytes = password.encode("utf-8")[:72]
        hash_bytes = password_hash.encode("utf-8")
        return bcrypt.checkpw(pw_bytes, hash_bytes)
    except (ValueError, TypeError):
        return False


def needs_rehash(password_hash: str, rounds: int) -> bool:
    """Check if a hash was produced with a different work factor.

    bcrypt hashes look like $2b$12$<salt+digest>; the second field is
    the log2 cost.
    """
    try:
        return int(password_hash.split("$")[2]) != rounds
    except (IndexError, ValueError):
        return True


async def hash_password_async(password: str, rounds: int = 12) -> str:
    return await asyncio.to_thread(hash_password, password, rounds)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)
