"""Tests for authorization URL construction and redirect results."""

import pytest

from loopauth.auth.models.flow import AuthorizationRequest, AuthorizationResult, FlowState

CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


class TestAuthorizationRequest:
    def test_url_has_fixed_parameter_order_and_escaping(self):
        # Arrange
        request = AuthorizationRequest(
            authorization_endpoint="https://accounts.spotify.com/authorize",
            client_id="client-123",
            redirect_uri="http://localhost:3000/callback",
            code_challenge=CHALLENGE,
            scope="user-library-read",
        )

        # Act
        url = request.build_authorization_url()

        # Assert
        assert url == (
            "https://accounts.spotify.com/authorize"
            "?response_type=code"
            "&client_id=client-123"
            "&scope=user-library-read"
            "&code_challenge_method=S256"
            f"&code_challenge={CHALLENGE}"
            "&redirect_uri=http%3A%2F%2Flocalhost%3A3000%2Fcallback"
        )

    def test_multiple_scopes_are_space_encoded(self):
        # Arrange
        request = AuthorizationRequest(
            authorization_endpoint="https://accounts.spotify.com/authorize",
            client_id="client 1",
            redirect_uri="https://127.0.0.1:8443/cb",
            code_challenge=CHALLENGE,
            scope="user-library-read playlist-read-private",
        )

        # Act
        url = request.build_authorization_url()

        # Assert
        assert "&client_id=client%201&" in url
        assert "&scope=user-library-read%20playlist-read-private&" in url
        assert url.endswith("&redirect_uri=https%3A%2F%2F127.0.0.1%3A8443%2Fcb")

    def test_same_inputs_give_same_url(self):
        # Arrange
        kwargs = dict(
            authorization_endpoint="https://accounts.spotify.com/authorize",
            client_id="client-123",
            redirect_uri="http://localhost:3000/callback",
            code_challenge=CHALLENGE,
            scope="user-library-read",
        )

        # Act & Assert
        assert (
            AuthorizationRequest(**kwargs).build_authorization_url()
            == AuthorizationRequest(**kwargs).build_authorization_url()
        )


class TestAuthorizationResult:
    def test_code_result(self):
        # Act
        result = AuthorizationResult(code="abc123")

        # Assert
        assert result.is_success()
        assert not result.is_error()

    def test_error_result(self):
        # Act
        result = AuthorizationResult(error="access_denied", error_description="User said no")

        # Assert
        assert result.is_error()
        assert not result.is_success()
        assert result.code is None

    @pytest.mark.parametrize(
        "kwargs", [{}, {"code": "abc", "error": "access_denied"}]
    )
    def test_needs_exactly_one_of_code_or_error(self, kwargs):
        with pytest.raises(ValueError):
            AuthorizationResult(**kwargs)


class TestFlowState:
    @pytest.mark.parametrize(
        "state,terminal",
        [
            (FlowState.INITIALIZING, False),
            (FlowState.AWAITING_REDIRECT, False),
            (FlowState.EXCHANGING_TOKEN, False),
            (FlowState.FETCHING_RESOURCE, False),
            (FlowState.COMPLETED, True),
            (FlowState.ERRORED, True),
        ],
    )
    def test_terminal_states(self, state, terminal):
        assert state.is_terminal is terminal
