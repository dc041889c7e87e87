"""Credential storage interface and the backend-backed implementation.

The client never keeps credentials itself: it reads the authentication
status from, and writes new credentials to, a ``ConfigStore``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from src.exceptions import NetworkError, ProtocolError
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class AuthStatus(BaseModel):
    """What the store knows about the configured credentials."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    has_api_key: bool = Field(default=False, validation_alias=AliasChoices("hasApiKey", "has_api_key"))
    has_external_auth: bool = Field(
        default=False,
        validation_alias=AliasChoices("hasExternalAuth", "hasCodexAuth", "has_external_auth"),
    )
    auth_method: str | None = Field(default=None, validation_alias=AliasChoices("authMethod", "auth_method"))
    external_available: bool = Field(
        default=False,
        validation_alias=AliasChoices("externalAvailable", "codexAvailable", "external_available"),
    )

    @property
    def authenticated(self) -> bool:
        return self.has_api_key or self.has_external_auth


class ConfigStore(Protocol):
    """Persistence for AI credentials."""

    async def get(self) -> AuthStatus: ...

    async def put(self, api_key: str | None = None, *, clear: bool = False) -> None: ...

    async def save_tokens(self, access_token: str, refresh_token: str | None) -> None: ...

    async def import_external_credentials(self) -> str:
        """Import credentials from the external CLI; returns the auth method."""
        ...


class HTTPConfigStore:
    """ConfigStore backed by the app builder's REST API.

    Usage::

        store = HTTPConfigStore()
        status = await store.get()
        if not status.authenticated:
            await store.put(api_key="sk-...")
    """

    CONFIG_PATH = "/api/ai/config"
    SAVE_TOKENS_PATH = "/api/ai/auth/save-tokens"
    IMPORT_PATH = "/api/ai/auth/codex-import"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.base_url = self.settings.api_base_url.rstrip("/")
        self.timeout = self.settings.request_timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        token = self.settings.api_token.get_secret_value()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, path, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            raise ProtocolError(
                message or f"{method} {path} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        if not isinstance(body, dict):
            raise ProtocolError(f"{method} {path} returned a non-JSON body", status_code=resp.status_code)
        return body.get("data", body)

    async def get(self) -> AuthStatus:
        data = await self._request("GET", self.CONFIG_PATH)
        try:
            return AuthStatus.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(f"Unexpected config payload: {e}") from e

    async def put(self, api_key: str | None = None, *, clear: bool = False) -> None:
        if clear:
            await self._request("PUT", self.CONFIG_PATH, json={"clear": True})
            logger.info("Cleared stored AI credentials")
            return
        if not api_key or not api_key.strip():
            raise ValueError("api_key is required unless clear=True")
        await self._request("PUT", self.CONFIG_PATH, json={"apiKey": api_key.strip()})
        logger.info("Stored AI API key")

    async def save_tokens(self, access_token: str, refresh_token: str | None) -> None:
        await self._request(
            "POST",
            self.SAVE_TOKENS_PATH,
            json={"accessToken": access_token, "refreshToken": refresh_token or ""},
        )
        logger.info("Stored device authorization tokens")

    async def import_external_credentials(self) -> str:
        data = await self._request("POST", self.IMPORT_PATH)
        method = data.get("method") if isinstance(data, dict) else None
        if not method:
            raise ProtocolError("Import response did not name an auth method")
        logger.info("Imported external credentials (%s)", method)
        return method


def get_config_store(settings: Settings | None = None) -> ConfigStore:
    """Build the store selected by ``settings.config_backend``."""
    settings = settings or get_settings()
    if settings.config_backend == "local":
        from src.auth.local_store import LocalConfigStore

        return LocalConfigStore(settings)
    return HTTPConfigStore(settings)


__all__ = ["AuthStatus", "ConfigStore", "HTTPConfigStore", "get_config_store"]
