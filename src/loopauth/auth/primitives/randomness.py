"""Cryptographically secure random bytes for PKCE verifiers."""

from __future__ import annotations

import secrets

from loopauth.auth.models.errors import EntropyUnavailable


class RandomnessSource:
    """Secure byte generator backed by the operating system CSPRNG.

    Subclass and override :meth:`generate_random_bytes` to feed fixed byte
    sequences in tests.
    """

    def generate_random_bytes(self, n: int) -> bytes:
        """Return ``n`` cryptographically secure random bytes.

        Raises:
            ValueError: If ``n`` is negative
            EntropyUnavailable: If the secure source cannot be read
        """
        if n < 0:
            raise ValueError("Byte count must not be negative")
        try:
            return secrets.token_bytes(n)
        except (OSError, NotImplementedError) as e:
            raise EntropyUnavailable(f"Secure random source unavailable: {e}") from e
