from pathlib import Path

import pytest
from pydantic import ValidationError

from loopauth.config import CONFIG_DIR, FlowConfig

ENV_NAMES = [
    "CLIENT_ID",
    "CLIENT_SECRET",
    "REDIRECT_URI",
    "SCOPES",
    "PROVIDER_DOMAIN",
    "AUTHORIZATION_URL",
    "TOKEN_URL",
    "RESOURCE_URL",
    "ISSUER",
    "KEY_PATH",
    "CERT_PATH",
    "VERIFIER_LENGTH",
    "PAGE_LIMIT",
    "PAGE_OFFSET",
    "HTTP_TIMEOUT",
    "REDIRECT_TIMEOUT",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    # set then delete so teardown also removes values load_dotenv adds
    for name in ENV_NAMES:
        monkeypatch.setenv(f"LOOPAUTH_{name}", "")
        monkeypatch.delenv(f"LOOPAUTH_{name}")
    # keep load_dotenv from picking up a stray .env
    empty = tmp_path / "empty.env"
    empty.write_text("")
    return empty


class TestFlowConfig:
    def test_defaults(self):
        # Act
        config = FlowConfig(client_id="client-123")

        # Assert
        assert config.redirect_uri == "http://localhost:3000/callback"
        assert config.scope == "user-library-read"
        assert config.authorization_endpoint == "https://accounts.spotify.com/authorize"
        assert config.token_endpoint == "https://accounts.spotify.com/api/token"
        assert config.resource_endpoint == "https://api.spotify.com/v1/me/tracks"
        assert config.key_path == CONFIG_DIR / "generated_key.pem"
        assert config.cert_path == CONFIG_DIR / "generated_certificate.crt"
        assert config.verifier_length == 128
        assert config.page_limit == 20
        assert config.redirect_timeout is None
        assert not config.uses_tls

    def test_provider_domain_drives_endpoints(self):
        # Act
        config = FlowConfig(client_id="client-123", provider_domain="example.com")

        # Assert
        assert config.authorization_endpoint == "https://accounts.example.com/authorize"
        assert config.token_endpoint == "https://accounts.example.com/api/token"
        assert config.resource_endpoint == "https://api.example.com/v1/me/tracks"

    def test_explicit_endpoints_win(self):
        # Act
        config = FlowConfig(
            client_id="client-123",
            authorization_url="https://idp.test/auth",
            token_url="https://idp.test/token",
            resource_url="https://api.test/items",
        )

        # Assert
        assert config.authorization_endpoint == "https://idp.test/auth"
        assert config.token_endpoint == "https://idp.test/token"
        assert config.resource_endpoint == "https://api.test/items"

    def test_client_secret_not_in_repr(self):
        # Act
        config = FlowConfig(client_id="client-123", client_secret="s3cret")

        # Assert
        assert "s3cret" not in repr(config)

    def test_https_redirect_uses_tls(self):
        # Act
        config = FlowConfig(client_id="client-123", redirect_uri="https://localhost:8443/cb")

        # Assert
        assert config.uses_tls

    @pytest.mark.parametrize(
        "redirect_uri",
        [
            "ftp://localhost:3000/callback",
            "http://localhost/callback",
            "http:///callback",
            "not a uri",
        ],
    )
    def test_invalid_redirect_uri_is_rejected(self, redirect_uri):
        with pytest.raises(ValidationError):
            FlowConfig(client_id="client-123", redirect_uri=redirect_uri)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"client_id": ""},
            {"verifier_length": 42},
            {"verifier_length": 129},
            {"page_limit": 0},
            {"page_limit": 51},
            {"page_offset": -1},
            {"http_timeout": 0},
            {"redirect_timeout": -1},
        ],
    )
    def test_out_of_range_values_are_rejected(self, overrides):
        # Arrange
        values = {"client_id": "client-123", **overrides}

        # Act & Assert
        with pytest.raises(ValidationError):
            FlowConfig(**values)


class TestFromEnv:
    def test_reads_prefixed_variables(self, clean_env, monkeypatch, tmp_path):
        # Arrange
        monkeypatch.setenv("LOOPAUTH_CLIENT_ID", "env-client")
        monkeypatch.setenv("LOOPAUTH_REDIRECT_URI", "http://127.0.0.1:8765/cb")
        monkeypatch.setenv("LOOPAUTH_SCOPES", "user-library-read, playlist-read-private")
        monkeypatch.setenv("LOOPAUTH_PAGE_LIMIT", "50")
        monkeypatch.setenv("LOOPAUTH_REDIRECT_TIMEOUT", "120")
        monkeypatch.setenv("LOOPAUTH_KEY_PATH", str(tmp_path / "key.pem"))

        # Act
        config = FlowConfig.from_env(dotenv_path=clean_env)

        # Assert
        assert config.client_id == "env-client"
        assert config.redirect_uri == "http://127.0.0.1:8765/cb"
        assert config.scopes == ["user-library-read", "playlist-read-private"]
        assert config.scope == "user-library-read playlist-read-private"
        assert config.page_limit == 50
        assert config.redirect_timeout == 120.0
        assert config.key_path == Path(tmp_path / "key.pem")

    def test_reads_dotenv_file(self, clean_env, monkeypatch, tmp_path):
        # Arrange
        dotenv = tmp_path / ".env"
        dotenv.write_text(
            "LOOPAUTH_CLIENT_ID=dotenv-client\nLOOPAUTH_PROVIDER_DOMAIN=example.com\n"
        )

        # Act
        config = FlowConfig.from_env(dotenv_path=dotenv)

        # Assert
        assert config.client_id == "dotenv-client"
        assert config.token_endpoint == "https://accounts.example.com/api/token"

    def test_environment_wins_over_dotenv(self, clean_env, monkeypatch, tmp_path):
        # Arrange
        dotenv = tmp_path / ".env"
        dotenv.write_text("LOOPAUTH_CLIENT_ID=dotenv-client\n")
        monkeypatch.setenv("LOOPAUTH_CLIENT_ID", "env-client")

        # Act
        config = FlowConfig.from_env(dotenv_path=dotenv)

        # Assert
        assert config.client_id == "env-client"

    def test_custom_prefix(self, clean_env, monkeypatch):
        # Arrange
        monkeypatch.setenv("SPOTIFY_CLIENT_ID", "prefixed-client")

        # Act
        config = FlowConfig.from_env(prefix="SPOTIFY_", dotenv_path=clean_env)

        # Assert
        assert config.client_id == "prefixed-client"

    def test_missing_client_id_is_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            FlowConfig.from_env(dotenv_path=clean_env)
