"""
SupplyGuard Backend — Backup Code Manager
===========================================

What:  Generates, hashes and verifies one-time 2FA recovery codes.
Why:   Users who lose their authenticator need a single-use fallback
       credential. Only hashes are ever stored.
How:   secrets.token_bytes for generation, bcrypt (cost 10) for hashing,
       bcrypt.checkpw for verification.
Who:   Called by the two-factor enrolment and login flows.

Code format:
    4 random bytes → 8 uppercase hex characters (32 bits of entropy),
    e.g. "9F2A01C4". Shown to the user exactly once.

Verification:
    The candidate is upper-cased, then checked against every stored hash in
    order; the first match wins. This is O(n) bcrypt checks (n ≈ 10, ~60ms
    each at cost 10). Each single check is constant-time inside bcrypt; the
    scan as a whole is not, which leaks at most the position of a match and
    is acceptable given the per-guess cost and the auth rate limiter.

Replay:
    verify() does not mutate anything. The caller must remove the matched
    hash from storage so the same code cannot be used twice.
"""

import logging
import secrets
from typing import List, Optional, Sequence

import bcrypt
from starlette.concurrency import run_in_threadpool

from supplyguard.exceptions import ValidationError

logger = logging.getLogger(__name__)

CODE_BYTES = 4


class BackupCodeManager:
    """
    Stateless backup code utility.

    Attributes:
        rounds: bcrypt cost factor (log2 of the work factor)
        count:  Batch size generate() uses when no count is passed
    """

    def __init__(self, rounds: int = 10, count: int = 10):
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        if count < 1:
            raise ValueError("count must be at least 1")
        self.rounds = rounds
        self.count = count

    def generate(self, count: Optional[int] = None) -> List[str]:
        """
        Create `count` distinct plaintext codes (default: self.count).

        Duplicates are regenerated, so the batch is always unique even in the
        (1 in ~4 billion per pair) case of a collision.
        """
        if count is None:
            count = self.count
        if count < 1:
            raise ValueError("count must be at least 1")
        codes: List[str] = []
        seen = set()
        while len(codes) < count:
            code = secrets.token_bytes(CODE_BYTES).hex().upper()
            if code in seen:
                continue
            seen.add(code)
            codes.append(code)
        return codes

    def hash_code(self, code: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(code.upper().encode("utf-8"), salt).decode("utf-8")

    def hash_all(self, codes: Sequence[str]) -> List[str]:
        """One salted hash per code, same order as the input."""
        return [self.hash_code(code) for code in codes]

    def verify(self, candidate: str, hashes: Sequence[str]) -> Optional[int]:
        """
        Find which stored hash the candidate matches.

        Args:
            candidate: Code typed by the user, any letter case
            hashes:    Stored hashes (unused codes only)

        Returns:
            Index of the first matching hash, or None.

        Raises:
            ValidationError: candidate is empty or whitespace
        """
        normalized = (candidate or "").strip().upper()
        if not normalized:
            raise ValidationError(message="Backup code must not be empty", field="code")

        encoded = normalized.encode("utf-8")
        for index, stored in enumerate(hashes):
            try:
                if bcrypt.checkpw(encoded, stored.encode("utf-8")):
                    return index
            except ValueError:
                # Malformed stored hash: treat as non-matching, keep scanning
                logger.warning("Skipping malformed backup code hash at index %d", index)
        return None

    async def ahash_all(self, codes: Sequence[str]) -> List[str]:
        """hash_all() in a worker thread, keeping the event loop free."""
        return await run_in_threadpool(self.hash_all, codes)

    async def averify(self, candidate: str, hashes: Sequence[str]) -> Optional[int]:
        """verify() in a worker thread, keeping the event loop free."""
        return await run_in_threadpool(self.verify, candidate, hashes)
