"""
auth/passwords.py -- bcrypt password hashing and verification.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection builds a password longer than 72 bytes, which bcrypt 4.x rejects.

bcrypt only looks at the first 72 bytes of a password, and bcrypt 5 raises
on longer input. Both hash() and verify() truncate to 72 bytes so the two
paths always agree.

Timing: verify() never returns early. An unknown account (verify_dummy) and a
malformed stored hash both spend one full bcrypt check against _dummy_hash,
so response time does not reveal which case occurred.

The CPU cost is paid on a dedicated ThreadPoolExecutor via hash_async() and
verify_async() so a slow hash never stalls the event loop.

Layer rule: no imports from api/ or accounts/.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

import bcrypt

logger = logging.getLogger("accountsvc.auth")

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Salted one-way password hashing with a tunable work factor.

    Usage:
        hasher = PasswordHasher(rounds=10)
        stored = await hasher.hash_async("s3cret")
        ok = await hasher.verify_async("s3cret", stored)
        hasher.close()
    """

    def __init__(self, rounds: int = 10, max_workers: int | None = None) -> None:
        self.rounds = rounds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pwhash")
        # Computed once so the first unknown-account login is not measurably
        # slower than later ones.
        self._dummy_hash = self.hash("accountsvc_timing_dummy").encode("utf-8")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the plaintext. Output differs on every call (random salt)."""
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if plain matches hashed. A malformed or missing hash returns False."""
        if not hashed:
            self.verify_dummy(plain)
            return False
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            logger.warning("Stored password hash is malformed; verification failed closed")
            self.verify_dummy(plain)
            return False

    def verify_dummy(self, plain: str) -> None:
        """Spend one bcrypt verification against the dummy hash and discard the result."""
        bcrypt.checkpw(_encode(plain), self._dummy_hash)

    async def hash_async(self, plain: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.hash, plain)

    async def verify_async(self, plain: str, hashed: str | None) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.verify, plain, hashed)

    async def verify_dummy_async(self, plain: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, self.verify_dummy, plain)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
