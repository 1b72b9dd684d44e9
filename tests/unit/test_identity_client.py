"""
Unit Tests: HttpIdentityProvider

Tests the login API client with httpx.MockTransport: request shape, profile
extraction, rejections and transport failures.

Run: pytest tests/unit/test_identity_client.py -v
"""

import json
import pytest
import httpx

from src.conversation_store.errors import AuthError
from src.conversation_store.models import Credentials
from src.conversation_store.services.identity_client import HttpIdentityProvider


LOGIN_URL = "https://identity.example.com/api/Auth/login"
TENANT_ID = "91004"


@pytest.fixture
def login_credentials() -> Credentials:
    return Credentials(username="91004", password="s3cret")


def _provider(handler) -> HttpIdentityProvider:
    return HttpIdentityProvider(LOGIN_URL, timeout=2.0, transport=httpx.MockTransport(handler))


def _valid_record(**overrides) -> dict:
    record = {
        "EsValido": 0,
        "Token": "  opaque-token  ",
        "CveUsuario": "91004",
        "Nombre": "\tAna ",
        "Paterno": "Lopez\t",
        "Materno": "Diaz",
        "Mensaje": "Login exitoso",
    }
    record.update(overrides)
    return record


# ============================================================================
# Test Category 1: Successful login
# ============================================================================

class TestValidCredentials:
    """Profile extraction."""

    @pytest.mark.asyncio
    async def test_posts_expected_body(self, login_credentials):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"info": [_valid_record()]})

        provider = _provider(handler)
        await provider.verify(TENANT_ID, login_credentials)
        await provider.close()

        assert seen["url"] == LOGIN_URL
        assert seen["body"] == {"cveUsuario": "91004", "password": "s3cret"}

    @pytest.mark.asyncio
    async def test_profile_is_cleaned(self, login_credentials):
        provider = _provider(lambda request: httpx.Response(200, json={"info": [_valid_record()]}))

        profile = await provider.verify(TENANT_ID, login_credentials)

        assert profile.token == "opaque-token"
        assert profile.display_name == "Ana"
        assert profile.user_key == "91004"
        assert profile.extra_fields["paternal_name"] == "Lopez"
        assert profile.extra_fields["maternal_name"] == "Diaz"

    @pytest.mark.asyncio
    async def test_json_string_payload_accepted(self, login_credentials):
        body = json.dumps({"info": [_valid_record()]})
        provider = _provider(lambda request: httpx.Response(200, json=body))

        profile = await provider.verify(TENANT_ID, login_credentials)
        assert profile.token == "opaque-token"


# ============================================================================
# Test Category 2: Rejections
# ============================================================================

class TestRejections:
    """Every failure is an AuthError with a readable reason."""

    @pytest.mark.asyncio
    async def test_invalid_flag_uses_provider_message(self, login_credentials):
        record = _valid_record(EsValido=1, Mensaje="Usuario o password incorrecto")
        provider = _provider(lambda request: httpx.Response(200, json={"info": [record]}))

        with pytest.raises(AuthError) as exc_info:
            await provider.verify(TENANT_ID, login_credentials)
        assert exc_info.value.reason == "Usuario o password incorrecto"

    @pytest.mark.asyncio
    async def test_blank_token_rejected(self, login_credentials):
        record = _valid_record(Token="   ", Mensaje=None)
        provider = _provider(lambda request: httpx.Response(200, json={"info": [record]}))

        with pytest.raises(AuthError) as exc_info:
            await provider.verify(TENANT_ID, login_credentials)
        assert exc_info.value.reason == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, login_credentials):
        provider = _provider(lambda request: httpx.Response(200, json={"info": []}))

        with pytest.raises(AuthError) as exc_info:
            await provider.verify(TENANT_ID, login_credentials)
        assert exc_info.value.reason == "Unexpected identity server response"

    @pytest.mark.asyncio
    async def test_unparseable_body(self, login_credentials):
        provider = _provider(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(AuthError) as exc_info:
            await provider.verify(TENANT_ID, login_credentials)
        assert exc_info.value.reason == "Could not parse identity server response"

    @pytest.mark.asyncio
    async def test_http_error_status(self, login_credentials):
        provider = _provider(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(AuthError) as exc_info:
            await provider.verify(TENANT_ID, login_credentials)
        assert exc_info.value.reason == "Identity server error: 503"

    @pytest.mark.asyncio
    async def test_timeout(self, login_credentials):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(AuthError) as exc_info:
            await _provider(handler).verify(TENANT_ID, login_credentials)
        assert exc_info.value.reason == "Identity server timed out"

    @pytest.mark.asyncio
    async def test_connection_refused(self, login_credentials):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AuthError) as exc_info:
            await _provider(handler).verify(TENANT_ID, login_credentials)
        assert exc_info.value.reason == "Could not connect to the identity server"
