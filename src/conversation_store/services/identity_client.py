"""
Identity provider client.

Verifies credentials and returns a profile plus an opaque token. The store
keeps the token inside the session; it is never used as a tenant id.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
import structlog

from src.conversation_store.errors import AuthError
from src.conversation_store.models import Credentials, IdentityProfile

logger = structlog.get_logger(__name__)


def _clean(value: Any) -> str:
    return str(value).replace("\t", "").strip() if value is not None else ""


class IdentityProvider(ABC):
    @abstractmethod
    async def verify(self, tenant_id: str, credentials: Credentials) -> IdentityProfile:
        """Return the profile for valid credentials, else raise AuthError."""

    async def close(self) -> None:
        return None


class HttpIdentityProvider(IdentityProvider):
    """
    Login API client.

    Posts ``{"cveUsuario", "password"}`` and expects ``{"info": [{...}]}``
    where the first record has ``EsValido == 0`` and a non-empty ``Token``.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            url: Login endpoint
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def verify(self, tenant_id: str, credentials: Credentials) -> IdentityProfile:
        logger.info("identity_verify_started", tenant_id=tenant_id, username=credentials.username)
        client = await self._get_client()
        try:
            response = await client.post(
                self.url,
                json={
                    "cveUsuario": credentials.username,
                    "password": credentials.password.get_secret_value(),
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("identity_http_error", tenant_id=tenant_id, status_code=e.response.status_code)
            raise AuthError(f"Identity server error: {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.warning("identity_timeout", tenant_id=tenant_id, timeout=self.timeout)
            raise AuthError("Identity server timed out") from e
        except httpx.ConnectError as e:
            logger.warning("identity_connect_failed", tenant_id=tenant_id, error=str(e))
            raise AuthError("Could not connect to the identity server") from e
        except httpx.HTTPError as e:
            logger.warning("identity_request_failed", tenant_id=tenant_id, error=str(e))
            raise AuthError("Connection error") from e

        record = self._first_record(response)
        if record.get("EsValido") != 0 or not _clean(record.get("Token")):
            reason = _clean(record.get("Mensaje")) or "Invalid credentials"
            logger.info("identity_rejected", tenant_id=tenant_id, reason=reason)
            raise AuthError(reason)

        profile = IdentityProfile(
            user_key=_clean(record.get("CveUsuario")) or credentials.username,
            display_name=_clean(record.get("Nombre")) or "User",
            token=_clean(record.get("Token")),
            extra_fields={
                "paternal_name": _clean(record.get("Paterno")),
                "maternal_name": _clean(record.get("Materno")),
                "message": _clean(record.get("Mensaje")) or "Login successful",
            },
        )
        logger.info("identity_verified", tenant_id=tenant_id, user_key=profile.user_key)
        return profile

    @staticmethod
    def _first_record(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
            # Some deployments return the JSON document as a string
            if isinstance(payload, str):
                payload = json.loads(payload)
        except ValueError as e:
            raise AuthError("Could not parse identity server response") from e

        info = payload.get("info") if isinstance(payload, dict) else None
        if not info or not isinstance(info, list) or not isinstance(info[0], dict):
            raise AuthError("Unexpected identity server response")
        return info[0]
