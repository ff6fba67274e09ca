"""Self-signed key/certificate persistence for the loopback listener.

Loads a PEM private key from disk, or generates an RSA key and a self-signed
certificate and saves both so later runs reuse them.
"""

from __future__ import annotations

import datetime
import ipaddress
import logging
import os
import stat
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from loopauth.auth.models.errors import CredentialPersistenceError
from loopauth.auth.models.security import CredentialMaterial

logger = logging.getLogger(__name__)

DEFAULT_KEY_SIZE = 4096
CERTIFICATE_VALIDITY = datetime.timedelta(days=3650)


def _parse_issuer(issuer: str) -> x509.Name:
    try:
        return x509.Name.from_rfc4514_string(issuer)
    except ValueError as e:
        raise CredentialPersistenceError(f"Invalid issuer name {issuer!r}: {e}") from e


def _serialize_private(key: RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


class CredentialStore:
    """Owns the key/certificate pair used to terminate TLS on the listener.

    Not safe for concurrent use; one flow per process is assumed.
    """

    def __init__(
        self,
        key_path: str | Path,
        cert_path: str | Path,
        issuer: str,
        key_size: int = DEFAULT_KEY_SIZE,
    ):
        self.key_path = Path(key_path).expanduser()
        self.cert_path = Path(cert_path).expanduser()
        self.issuer = issuer
        self.key_size = key_size

    def ensure_credentials(self) -> CredentialMaterial:
        """Load the persisted credentials, creating them on first use.

        A loadable key is enough for success. When the certificate next to
        it is missing, unreadable, issued for another key or under another
        issuer, a new one is issued for that key.

        Returns:
            CredentialMaterial: The loaded or freshly generated material

        Raises:
            CredentialPersistenceError: If new material cannot be generated
        """
        key = self._load_key()
        if key is not None:
            logger.debug(f"Loaded private key from {self.key_path}")
            certificate = self._load_certificate()
            if certificate is not None and not self._certificate_matches(key, certificate):
                logger.warning(
                    f"Certificate at {self.cert_path} does not match the key or issuer"
                )
                certificate = None
            persisted = True
            if certificate is None:
                logger.warning(
                    f"No usable certificate at {self.cert_path}, issuing a new one"
                )
                certificate = self.issue_certificate(key)
                persisted = self._persist(self.cert_path, self._certificate_bytes(certificate))
            return CredentialMaterial(
                private_key=key,
                certificate=certificate,
                issuer=self.issuer,
                key_path=self.key_path,
                cert_path=self.cert_path,
                persisted=persisted,
            )

        logger.warning(f"Could not load key from {self.key_path}, creating a new one")
        return self._create_credentials()

    def issue_certificate(self, key: RSAPrivateKey) -> x509.Certificate:
        """Issue a self-signed certificate for ``key`` bound to the issuer name."""
        name = _parse_issuer(self.issuer)
        now = datetime.datetime.now(datetime.timezone.utc)

        return (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + CERTIFICATE_VALIDITY)
            .add_extension(
                x509.SubjectAlternativeName(
                    [
                        x509.DNSName("localhost"),
                        x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                    ]
                ),
                critical=False,
            )
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .sign(key, hashes.SHA256())
        )

    def _create_credentials(self) -> CredentialMaterial:
        try:
            key = rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)
        except ValueError as e:
            raise CredentialPersistenceError(f"Failed to generate RSA key: {e}") from e
        certificate = self.issue_certificate(key)

        persisted = self._persist(self.key_path, _serialize_private(key), private=True)
        if persisted:
            persisted = self._persist(self.cert_path, self._certificate_bytes(certificate))

        if persisted:
            logger.info(f"Generated and saved credentials to {self.key_path.parent}")

        return CredentialMaterial(
            private_key=key,
            certificate=certificate,
            issuer=self.issuer,
            key_path=self.key_path,
            cert_path=self.cert_path,
            persisted=persisted,
        )

    def _load_key(self) -> RSAPrivateKey | None:
        try:
            key = serialization.load_pem_private_key(self.key_path.read_bytes(), password=None)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load key from {self.key_path}: {e}")
            return None

        if not isinstance(key, RSAPrivateKey):
            logger.warning(f"Key at {self.key_path} is not an RSA key")
            return None
        return key

    def _load_certificate(self) -> x509.Certificate | None:
        try:
            return x509.load_pem_x509_certificate(self.cert_path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load certificate from {self.cert_path}: {e}")
            return None

    def _certificate_matches(
        self, key: RSAPrivateKey, certificate: x509.Certificate
    ) -> bool:
        """True if ``certificate`` was issued for ``key`` under the configured issuer."""
        public_key = certificate.public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            return False
        if public_key.public_numbers() != key.public_key().public_numbers():
            return False
        return certificate.subject == _parse_issuer(self.issuer)

    @staticmethod
    def _certificate_bytes(certificate: x509.Certificate) -> bytes:
        return certificate.public_bytes(serialization.Encoding.PEM)

    def _persist(self, path: Path, data: bytes, private: bool = False) -> bool:
        """Write ``data`` to ``path``; failures are logged, not raised."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            if private and os.name != "nt":
                path.chmod(stat.S_IRUSR | stat.S_IWUSR)
        except OSError as e:
            error = CredentialPersistenceError(f"Could not save {path}: {e}")
            logger.warning(f"{error}; continuing with in-memory credentials")
            return False
        return True
