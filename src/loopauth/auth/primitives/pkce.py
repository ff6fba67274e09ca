"""PKCE (Proof Key for Code Exchange) generation for the authorization flow.

Implements RFC 7636 S256 parameters: a random verifier drawn from the
alphanumeric alphabet and its base64url-encoded SHA-256 challenge.
"""

from __future__ import annotations

import base64
import hashlib
import string

from loopauth.auth.models.errors import EntropyUnavailable, PKCEError
from loopauth.auth.models.security import (
    MAX_VERIFIER_LENGTH,
    MIN_VERIFIER_LENGTH,
    PKCEParameters,
)
from loopauth.auth.primitives.randomness import RandomnessSource

VERIFIER_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
DEFAULT_VERIFIER_LENGTH = MAX_VERIFIER_LENGTH


def generate_verifier(
    length: int = DEFAULT_VERIFIER_LENGTH,
    randomness: RandomnessSource | None = None,
) -> str:
    """Generate a code verifier of ``length`` alphanumeric characters.

    Each random byte picks one character via ``byte % 62``.

    Args:
        length: Verifier length, 43-128 characters (RFC 7636 Section 4.1)
        randomness: Byte source, defaults to the OS CSPRNG

    Returns:
        The code verifier

    Raises:
        PKCEError: If ``length`` is outside 43-128
        EntropyUnavailable: If random bytes cannot be read
    """
    if not (MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH):
        raise PKCEError(
            f"code_verifier length must be between {MIN_VERIFIER_LENGTH} and "
            f"{MAX_VERIFIER_LENGTH}, got {length}"
        )

    source = randomness or RandomnessSource()
    random_bytes = source.generate_random_bytes(length)
    if len(random_bytes) != length:
        raise EntropyUnavailable(
            f"Random source returned {len(random_bytes)} bytes, expected {length}"
        )

    return "".join(
        VERIFIER_ALPHABET[byte % len(VERIFIER_ALPHABET)] for byte in random_bytes
    )


def derive_challenge(verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
    without ``=`` padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class PKCEManager:
    """Generates PKCE parameters for one authorization flow at a time."""

    def __init__(
        self,
        randomness: RandomnessSource | None = None,
        verifier_length: int = DEFAULT_VERIFIER_LENGTH,
    ):
        self._randomness = randomness or RandomnessSource()
        self.verifier_length = verifier_length

    def generate_parameters(self) -> PKCEParameters:
        """Generate new PKCE parameters.

        Returns:
            PKCEParameters: Immutable parameters for the authorization flow

        Raises:
            EntropyUnavailable: If the random source fails
            PKCEError: If parameter generation fails for any other reason
        """
        try:
            code_verifier = generate_verifier(self.verifier_length, self._randomness)
            code_challenge = derive_challenge(code_verifier)

            return PKCEParameters(
                code_verifier=code_verifier,
                code_challenge=code_challenge,
                code_challenge_method="S256",
            )

        except (EntropyUnavailable, PKCEError):
            raise
        except Exception as e:
            raise PKCEError(f"Failed to generate PKCE parameters: {e}") from e
