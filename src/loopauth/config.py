"""Configuration for the loopback authorization flow.

Values are provided at construction; :meth:`FlowConfig.from_env` builds them
from ``LOOPAUTH_*`` environment variables and an optional ``.env`` file.
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from loopauth.auth.models.resources import MAX_PAGE_LIMIT
from loopauth.auth.models.security import MAX_VERIFIER_LENGTH, MIN_VERIFIER_LENGTH

CONFIG_DIR = Path.home() / ".loopauth"
DEFAULT_REDIRECT_URI = "http://localhost:3000/callback"
DEFAULT_SCOPES = ["user-library-read"]
DEFAULT_PROVIDER_DOMAIN = "spotify.com"
DEFAULT_ISSUER = "CN=loopauth,O=loopauth,C=ES"


class FlowConfig(BaseModel):
    """Everything one authorization flow needs to know about the provider."""

    client_id: str = Field(min_length=1)
    # Reserved: the PKCE exchange never sends it.
    client_secret: str | None = Field(default=None, repr=False)
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))

    provider_domain: str = DEFAULT_PROVIDER_DOMAIN
    authorization_url: str | None = None
    token_url: str | None = None
    resource_url: str | None = None

    issuer: str = DEFAULT_ISSUER
    key_path: Path = CONFIG_DIR / "generated_key.pem"
    cert_path: Path = CONFIG_DIR / "generated_certificate.crt"

    verifier_length: int = Field(
        default=MAX_VERIFIER_LENGTH, ge=MIN_VERIFIER_LENGTH, le=MAX_VERIFIER_LENGTH
    )
    page_limit: int = Field(default=20, ge=1, le=MAX_PAGE_LIMIT)
    page_offset: int = Field(default=0, ge=0)

    http_timeout: float = Field(default=30.0, gt=0)
    redirect_timeout: float | None = Field(default=None, gt=0)

    @field_validator("redirect_uri")
    @classmethod
    def _validate_redirect_uri(cls, value: str) -> str:
        parsed = urlsplit(value)
        if parsed.scheme not in ("http", "https"):
            raise ValueError("redirect_uri must use http or https")
        if not parsed.hostname:
            raise ValueError("redirect_uri must include a host")
        if parsed.port is None:
            raise ValueError("redirect_uri must include a port")
        return value

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    @property
    def authorization_endpoint(self) -> str:
        return self.authorization_url or f"https://accounts.{self.provider_domain}/authorize"

    @property
    def token_endpoint(self) -> str:
        return self.token_url or f"https://accounts.{self.provider_domain}/api/token"

    @property
    def resource_endpoint(self) -> str:
        return self.resource_url or f"https://api.{self.provider_domain}/v1/me/tracks"

    @property
    def uses_tls(self) -> bool:
        return urlsplit(self.redirect_uri).scheme == "https"

    @classmethod
    def from_env(
        cls, prefix: str = "LOOPAUTH_", dotenv_path: str | Path | None = None
    ) -> FlowConfig:
        """Build a config from environment variables.

        ``LOOPAUTH_CLIENT_ID`` is required; ``LOOPAUTH_SCOPES`` is a space or
        comma separated list. Unset variables keep their defaults.
        """
        load_dotenv(dotenv_path)

        fields = {
            "client_id": "CLIENT_ID",
            "client_secret": "CLIENT_SECRET",
            "redirect_uri": "REDIRECT_URI",
            "provider_domain": "PROVIDER_DOMAIN",
            "authorization_url": "AUTHORIZATION_URL",
            "token_url": "TOKEN_URL",
            "resource_url": "RESOURCE_URL",
            "issuer": "ISSUER",
            "key_path": "KEY_PATH",
            "cert_path": "CERT_PATH",
            "verifier_length": "VERIFIER_LENGTH",
            "page_limit": "PAGE_LIMIT",
            "page_offset": "PAGE_OFFSET",
            "http_timeout": "HTTP_TIMEOUT",
            "redirect_timeout": "REDIRECT_TIMEOUT",
        }
        values: dict[str, object] = {}
        for field_name, suffix in fields.items():
            value = os.getenv(f"{prefix}{suffix}")
            if value:
                values[field_name] = value

        scopes = os.getenv(f"{prefix}SCOPES")
        if scopes:
            values["scopes"] = scopes.replace(",", " ").split()

        values.setdefault("client_id", "")
        return cls.model_validate(values)
