"""
Keygate - Credential Codec

Secret generation plus the two digests every credential carries:

- fingerprint: fast SHA-256 prefix used to narrow store lookups
- verifier: Argon2id hash, the only proof of possession
"""

from __future__ import annotations

import hashlib
import logging
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

logger = logging.getLogger("keygate.codec")

FINGERPRINT_LENGTH = 16
MIN_SECRET_BYTES = 32


def redact(secret: str | None, visible: int = 6) -> str:
    """
    Shorten a secret for log output.

    Only the first few characters survive, enough to correlate log lines
    without making the value usable.
    """
    if not secret:
        return "<empty>"
    if len(secret) <= visible:
        return "***"
    return f"{secret[:visible]}***"


class CredentialCodec:
    """
    Generates secrets and derives their fingerprints and verifiers.

    Security parameters (defaults):
    - secret: 48 random bytes, URL-safe base64 (64 characters, 384 bits)
    - Argon2id: time_cost=3, memory_cost=65536 (64MB), parallelism=4
    - fingerprint: first 16 hex characters of SHA-256
    """

    def __init__(
        self,
        secret_bytes: int = 48,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
        hash_len: int = 32,
        salt_len: int = 16,
    ):
        """
        Initialize codec.

        Args:
            secret_bytes: Random bytes per generated secret (at least 32)
            time_cost: Argon2 time cost (iterations)
            memory_cost: Argon2 memory cost (KiB)
            parallelism: Argon2 parallelism (lanes)
            hash_len: Output hash length
            salt_len: Salt length
        """
        if secret_bytes < MIN_SECRET_BYTES:
            raise ValueError(f"secret_bytes must be at least {MIN_SECRET_BYTES}")

        self.secret_bytes = secret_bytes
        self.hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
        )

    def generate(self) -> str:
        """Fresh high-entropy URL-safe secret."""
        return secrets.token_urlsafe(self.secret_bytes)

    @staticmethod
    def fingerprint(secret: str) -> str:
        """
        Deterministic short digest of a secret.

        Not secret and not unique: truncation collisions are expected and
        resolved by verifying each candidate.
        """
        return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]

    def derive(self, secret: str) -> str:
        """
        Salted Argon2id hash of the secret.

        Example output:
            $argon2id$v=19$m=65536,t=3,p=4$saltbase64$hashbase64
        """
        return self.hasher.hash(secret)

    def verify(self, verifier: str, secret: str) -> bool:
        """
        Check a secret against a verifier.

        Returns False on mismatch and on malformed verifiers; never raises
        for bad input.
        """
        if not verifier or not secret:
            return False
        try:
            return self.hasher.verify(verifier, secret)
        except VerificationError:
            return False
        except InvalidHashError:
            logger.warning(f"Malformed verifier presented for secret {redact(secret)}")
            return False
