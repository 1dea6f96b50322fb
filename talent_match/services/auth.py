"""
Bearer credential -> user id, delegated to the hosted identity provider.
"""
from typing import Optional

import httpx
from fastapi import Depends, Request

from talent_match.utils import config
from talent_match.utils.exceptions import AuthenticationError, ConfigurationError, ExternalServiceError
from talent_match.utils.logging_config import get_logger

logger = get_logger(__name__)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class IdentityProvider:
    """Calls AUTH_URL (e.g. <supabase>/auth/v1/user) with the caller's token and reads the user id."""

    def __init__(self, auth_url: Optional[str] = None, api_key: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.auth_url = auth_url or config.AUTH_URL
        self.api_key = api_key if api_key is not None else config.AUTH_API_KEY
        self._http = http_client
        self.timeout = timeout

    async def resolve(self, token: Optional[str]) -> str:
        if not token:
            raise AuthenticationError("Unable to authenticate user: missing bearer token")
        if not self.auth_url:
            raise ConfigurationError("AUTH_URL not configured", config_key="AUTH_URL")

        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key
        try:
            if self._http is not None:
                response = await self._http.get(self.auth_url, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as http:
                    response = await http.get(self.auth_url, headers=headers)
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                "Identity provider unreachable", service_name="auth", retryable=True, cause=e
            ) from e

        if response.status_code in (401, 403):
            raise AuthenticationError("Unable to authenticate user")
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Identity provider error: {response.status_code}",
                service_name="auth", status_code=response.status_code,
            )
        try:
            user_id = response.json().get("id")
        except (ValueError, AttributeError):
            user_id = None
        if not user_id:
            raise AuthenticationError("Unable to authenticate user")
        return str(user_id)


def get_identity_provider() -> IdentityProvider:
    return IdentityProvider()


def get_bearer_token(request: Request) -> Optional[str]:
    return bearer_token(request.headers.get("Authorization"))


async def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> str:
    """Dependency for the JSON routes; failures surface as AuthenticationError (401)."""
    return await identity.resolve(token)
