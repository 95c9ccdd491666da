"""
Discharge Portal - Delegated Identity Tests

The identity provider is never contacted: strategies are replaced with
mocks, and the HTTP / google-auth layers are patched where a strategy
itself is under test.

Run with: pytest tests/test_delegated.py -v
"""

import json
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest
from google.auth.transport.requests import Request as GoogleRequest
from jose import jwt
from structlog.testing import capture_logs

from discharge_backend.auth.delegated import (
    DelegatedClaims,
    DelegatedIdentityVerifier,
    VerificationContext,
    _TimeoutRequest,
    check_identity_claims,
    is_service_audience,
    plan_strategies,
    verify_signature_strict_audience,
    verify_signature_without_audience,
    verify_with_tokeninfo,
)
from discharge_backend.auth.errors import TokenVerificationFailed
from discharge_backend.config import Settings
from tests.conftest import TEST_CLIENT_ID


SERVICE_URL = "https://reminders-abc123-uc.a.run.app"
SERVICE_EMAIL = "scheduler@discharge-portal.iam.gserviceaccount.com"


def google_token(**claims) -> str:
    """A JWT-shaped token whose unverified claims look Google-issued."""
    payload = {
        "iss": "https://accounts.google.com",
        "aud": SERVICE_URL,
        "email": SERVICE_EMAIL,
        "email_verified": True,
    }
    payload.update(claims)
    return jwt.encode(payload, "irrelevant", algorithm="HS256")


def good_payload(**overrides) -> dict:
    payload = {
        "iss": "https://accounts.google.com",
        "email": SERVICE_EMAIL,
        "email_verified": True,
    }
    payload.update(overrides)
    return payload


def ctx(**overrides) -> VerificationContext:
    values = dict(audience=SERVICE_URL, client_id=TEST_CLIENT_ID, timeout_seconds=2.0)
    values.update(overrides)
    return VerificationContext(**values)


def verifier_with(*strategies) -> DelegatedIdentityVerifier:
    """Verifier whose planner returns the given (name, strategy) pairs."""
    return DelegatedIdentityVerifier(
        client_id=TEST_CLIENT_ID,
        planner=lambda context: list(strategies),
    )


# =============================================================================
# STRATEGY SELECTION
# =============================================================================

class TestPlanStrategies:

    def names(self, context):
        return [name for name, _ in plan_strategies(context)]

    def test_service_url_audience(self):
        """Service URL audience: tokeninfo then signature."""
        assert self.names(ctx()) == ["tokeninfo", "signature_any_audience"]

    def test_service_url_in_audience_list(self):
        assert self.names(ctx(audience=["other", SERVICE_URL])) == [
            "tokeninfo",
            "signature_any_audience",
        ]

    def test_client_id_audience(self):
        """Client id audience gets the strict signature check."""
        assert self.names(ctx(audience=TEST_CLIENT_ID)) == ["signature_strict_audience"]

    def test_unrecognized_audience(self):
        """Unknown audience falls back to the best-effort check."""
        assert self.names(ctx(audience="https://example.org")) == ["signature_best_effort"]

    def test_missing_audience(self):
        assert self.names(ctx(audience=None)) == ["signature_best_effort"]

    def test_client_id_unset(self):
        """Without a client id the strict path is never planned."""
        assert self.names(ctx(audience=TEST_CLIENT_ID, client_id=None)) == ["signature_best_effort"]

    @pytest.mark.parametrize("audience, expected", [
        (SERVICE_URL, True),
        ("https://api.run.app/path", True),
        ("http://insecure.a.run.app", False),
        ("https://evil.run.app.attacker.com", False),
        ("not a url", False),
    ])
    def test_service_audience_shape(self, audience, expected):
        """Only https URLs on the platform suffix count."""
        assert is_service_audience(audience, (".run.app",)) is expected


# =============================================================================
# CLAIM GATE
# =============================================================================

class TestIdentityClaims:

    def test_accepts_verified_google_identity(self):
        """Verified Google identity passes the claim gate."""
        claims = check_identity_claims(good_payload(), ctx())

        assert claims == DelegatedClaims(email=SERVICE_EMAIL, email_verified=True)

    def test_accepts_tokeninfo_string_boolean(self):
        """tokeninfo returns email_verified as a string."""
        assert check_identity_claims(good_payload(email_verified="true"), ctx()).email == SERVICE_EMAIL

    def test_accepts_bare_issuer(self):
        assert check_identity_claims(good_payload(iss="accounts.google.com"), ctx())

    @pytest.mark.parametrize("payload", [
        good_payload(iss="https://evil.example.com"),
        good_payload(email_verified=False),
        good_payload(email_verified="false"),
        good_payload(email=None),
        {"iss": "https://accounts.google.com", "email_verified": True},
    ])
    def test_rejects(self, payload):
        """Payloads failing the issuer or email checks are refused."""
        with pytest.raises(TokenVerificationFailed):
            check_identity_claims(payload, ctx())


# =============================================================================
# VERIFIER FALLBACK ORDER
# =============================================================================

class TestVerifierFallback:

    def test_first_success_wins(self):
        """Later strategies are skipped after a success."""
        first = Mock(return_value=good_payload())
        second = Mock(return_value=good_payload())

        claims = verifier_with(("first", first), ("second", second)).verify(google_token())

        assert claims.email == SERVICE_EMAIL
        second.assert_not_called()

    def test_falls_through_in_order(self):
        """A failing strategy hands over to the next one."""
        calls = []

        def tokeninfo(token, context):
            calls.append("tokeninfo")
            raise TokenVerificationFailed("tokeninfo rejected token (400)")

        def signature(token, context):
            calls.append("signature")
            return good_payload()

        claims = verifier_with(("tokeninfo", tokeninfo), ("signature", signature)).verify(google_token())

        assert claims is not None
        assert calls == ["tokeninfo", "signature"]

    def test_claim_check_applies_after_any_strategy(self):
        """A verified payload still needs a verified email."""
        strategy = Mock(return_value=good_payload(email_verified=False))

        assert verifier_with(("only", strategy)).verify(google_token()) is None

    def test_context_carries_unverified_audience(self):
        """Strategies see the token's audience and our client id."""
        strategy = Mock(return_value=good_payload())

        verifier_with(("only", strategy)).verify(google_token(aud=TEST_CLIENT_ID))

        context = strategy.call_args.args[1]
        assert context.audience == TEST_CLIENT_ID
        assert context.client_id == TEST_CLIENT_ID

    def test_non_jwt_skipped_without_strategies(self):
        """Opaque tokens never reach a strategy."""
        strategy = Mock()

        assert verifier_with(("only", strategy)).verify("opaque-api-key") is None
        strategy.assert_not_called()

    def test_unexpected_error_never_raises(self):
        """Unexpected errors become None plus an anomaly log."""
        strategy = Mock(side_effect=RuntimeError("boom"))

        with capture_logs() as logs:
            assert verifier_with(("only", strategy)).verify(google_token()) is None

        assert any(e["event"] == "delegated_token_anomaly" for e in logs)

    def test_genuine_token_failure_logged_as_anomaly(self):
        """Google-issued tokens that fail are logged at warning."""
        failing = Mock(side_effect=TokenVerificationFailed("signature check failed"))

        with capture_logs() as logs:
            verifier_with(("only", failing)).verify(google_token())

        anomalies = [e for e in logs if e["event"] == "delegated_token_anomaly"]
        assert anomalies and anomalies[0]["log_level"] == "warning"

    def test_foreign_token_failure_logged_quietly(self):
        """Tokens from other issuers fall back without running any strategy."""
        failing = Mock(side_effect=TokenVerificationFailed("signature check failed"))

        with capture_logs() as logs:
            verifier_with(("only", failing)).verify(google_token(iss="discharge-portal"))

        assert not [e for e in logs if e["log_level"] == "warning"]
        assert any(e["event"] == "delegated_token_not_applicable" for e in logs)
        failing.assert_not_called()

    def test_best_effort_path_logged(self):
        """Best-effort verification is logged."""
        strategy = Mock(return_value=good_payload())

        with capture_logs() as logs:
            verifier_with(("signature_best_effort", strategy)).verify(google_token())

        assert any(e["event"] == "delegated_audience_unrecognized" for e in logs)


# =============================================================================
# STRATEGIES
# =============================================================================

class TestTokeninfoStrategy:

    def mock_client(self, MockClient):
        return MockClient.return_value.__enter__.return_value

    @patch("discharge_backend.auth.delegated.httpx.Client")
    def test_returns_payload(self, MockClient):
        """Accepted tokeninfo response becomes the payload."""
        response = MagicMock(status_code=200)
        response.json.return_value = good_payload(email_verified="true")
        self.mock_client(MockClient).get.return_value = response

        payload = verify_with_tokeninfo("tok", ctx())

        assert payload["email"] == SERVICE_EMAIL
        self.mock_client(MockClient).get.assert_called_once_with(
            "https://oauth2.googleapis.com/tokeninfo", params={"id_token": "tok"}
        )

    @patch("discharge_backend.auth.delegated.httpx.Client")
    def test_timeout_bounded_and_treated_as_failure(self, MockClient):
        """Client timeout is set and a timeout fails the strategy."""
        self.mock_client(MockClient).get.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(TokenVerificationFailed):
            verify_with_tokeninfo("tok", ctx(timeout_seconds=2.0))

        assert MockClient.call_args.kwargs["timeout"] == 2.0

    @patch("discharge_backend.auth.delegated.httpx.Client")
    def test_rejection_status(self, MockClient):
        """Non-200 tokeninfo answers fail the strategy."""
        self.mock_client(MockClient).get.return_value = MagicMock(status_code=400)

        with pytest.raises(TokenVerificationFailed):
            verify_with_tokeninfo("tok", ctx())

    @patch("discharge_backend.auth.delegated.httpx.Client")
    def test_verifier_survives_timeout(self, MockClient):
        """A timeout yields None, not an exception."""
        self.mock_client(MockClient).get.side_effect = httpx.ConnectTimeout("timed out")

        verifier = verifier_with(("tokeninfo", verify_with_tokeninfo))

        assert verifier.verify(google_token()) is None


class TestSignatureStrategies:

    @patch("discharge_backend.auth.delegated.google_id_token.verify_oauth2_token")
    def test_any_audience(self, verify_oauth2_token):
        """Signature check without an audience."""
        verify_oauth2_token.return_value = good_payload()

        assert verify_signature_without_audience("tok", ctx())["email"] == SERVICE_EMAIL
        assert verify_oauth2_token.call_args.kwargs["audience"] is None

    @patch("discharge_backend.auth.delegated.google_id_token.verify_oauth2_token")
    def test_strict_audience(self, verify_oauth2_token):
        """Strict check passes our client id as audience."""
        verify_oauth2_token.return_value = good_payload()

        verify_signature_strict_audience("tok", ctx())

        assert verify_oauth2_token.call_args.kwargs["audience"] == TEST_CLIENT_ID

    @patch("discharge_backend.auth.delegated.google_id_token.verify_oauth2_token")
    def test_invalid_signature(self, verify_oauth2_token):
        """google-auth ValueError fails the strategy."""
        verify_oauth2_token.side_effect = ValueError("Could not verify token signature.")

        with pytest.raises(TokenVerificationFailed):
            verify_signature_without_audience("tok", ctx())

    def test_strict_audience_needs_client_id(self):
        with pytest.raises(TokenVerificationFailed):
            verify_signature_strict_audience("tok", ctx(client_id=None))

    def test_transport_forces_timeout(self):
        """Key fetches always carry the configured timeout."""
        request = _TimeoutRequest(2.5)

        with patch.object(GoogleRequest, "__call__") as parent_call:
            request("https://www.googleapis.com/oauth2/v1/certs", timeout=120)

        assert parent_call.call_args.kwargs["timeout"] == 2.5


# =============================================================================
# CONFIGURATION
# =============================================================================

class TestFromSettings:

    def test_client_id_from_settings(self):
        """Explicit client id setting is used as-is."""
        verifier = DelegatedIdentityVerifier.from_settings(
            Settings(GOOGLE_CLIENT_ID=TEST_CLIENT_ID, DELEGATED_TIMEOUT_SECONDS=3.0)
        )

        assert verifier.client_id == TEST_CLIENT_ID
        assert verifier.timeout_seconds == 3.0

    def test_client_id_from_service_account(self, tmp_path):
        """Client id read from the service account key file."""
        key_file = tmp_path / "service-account.json"
        key_file.write_text(json.dumps({"type": "service_account", "client_id": "1122334455"}))

        verifier = DelegatedIdentityVerifier.from_settings(
            Settings(GOOGLE_CLIENT_ID="", SERVICE_ACCOUNT_PATH=str(key_file))
        )

        assert verifier.client_id == "1122334455"

    def test_missing_service_account(self, tmp_path):
        """Unreadable key file leaves the client id unset."""
        verifier = DelegatedIdentityVerifier.from_settings(
            Settings(GOOGLE_CLIENT_ID="", SERVICE_ACCOUNT_PATH=str(tmp_path / "missing.json"))
        )

        assert verifier.client_id is None
