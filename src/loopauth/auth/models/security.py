"""Security-related models for the authorization flow.

Contains the PKCE parameters and the key/certificate material used to
secure the loopback listener.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


@dataclass(frozen=True)
class PKCEParameters:
    """PKCE (Proof Key for Code Exchange) parameters for one authorization attempt.

    Immutable parameters generated once per flow to bind the authorization
    code to this client (RFC 7636).
    """

    code_verifier: str = field(repr=False)
    code_challenge: str = field()
    code_challenge_method: str = field(default="S256")

    def __post_init__(self) -> None:
        """Validate PKCE parameters meet RFC 7636 requirements."""
        if not (MIN_VERIFIER_LENGTH <= len(self.code_verifier) <= MAX_VERIFIER_LENGTH):
            raise ValueError("code_verifier must be 43-128 characters")
        if not (43 <= len(self.code_challenge) <= 128):
            raise ValueError("code_challenge must be 43-128 characters")
        if self.code_challenge_method != "S256":
            raise ValueError("Only S256 code challenge method is supported")


PKCEPair = PKCEParameters


@dataclass(frozen=True)
class CredentialMaterial:
    """Private key and self-signed certificate owned by the credential store.

    ``certificate`` is None when the key loaded but no certificate could be
    read or issued. ``persisted`` is False when the files on disk do not hold
    this material.
    """

    private_key: RSAPrivateKey = field(repr=False)
    certificate: x509.Certificate | None
    issuer: str
    key_path: Path
    cert_path: Path
    persisted: bool = True

    @property
    def can_serve_tls(self) -> bool:
        """True if the key and certificate on disk can back a TLS listener."""
        return self.persisted and self.certificate is not None
