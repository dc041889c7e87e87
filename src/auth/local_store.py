"""File-backed ConfigStore for running without the builder backend.

Credentials live in ``<config_dir>/auth.json`` (mode 0600). Import reads
the external CLI's ``auth.json`` from ``$CODEX_HOME`` (default ``~/.codex``).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import jwt

from src.auth.config_store import AuthStatus
from src.exceptions import ConfigurationError
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)

AUTH_FILE = "auth.json"
METHOD_API_KEY = "api_key"
METHOD_EXTERNAL = "codex_chatgpt"
_ACCOUNT_CLAIM = "https://api.openai.com/auth"


def extract_account_id(access_token: str) -> str:
    """Read ``chatgpt_account_id`` from an access token's claims.

    The signature is not verified: the token is only inspected, never trusted.
    Returns an empty string when the token is not a decodable JWT.
    """
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return ""
    auth = claims.get(_ACCOUNT_CLAIM)
    if isinstance(auth, dict):
        return str(auth.get("chatgpt_account_id") or "")
    return ""


class LocalConfigStore:
    """ConfigStore persisted to a JSON file."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.path = Path(self.settings.config_dir) / AUTH_FILE

    @property
    def external_path(self) -> Path:
        home = self.settings.codex_home or Path.home() / ".codex"
        return Path(home) / AUTH_FILE

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable credential file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        # O_CREAT only applies the mode to new files
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    async def get(self) -> AuthStatus:
        data = self._load()
        return AuthStatus(
            has_api_key=bool(data.get("api_key")),
            has_external_auth=bool(data.get("access_token")),
            auth_method=data.get("auth_method") or None,
            external_available=self.external_path.exists(),
        )

    async def put(self, api_key: str | None = None, *, clear: bool = False) -> None:
        if clear:
            self._save({})
            logger.info("Cleared stored AI credentials")
            return
        if not api_key or not api_key.strip():
            raise ValueError("api_key is required unless clear=True")
        self._save({"auth_method": METHOD_API_KEY, "api_key": api_key.strip()})
        logger.info("Stored AI API key")

    async def save_tokens(self, access_token: str, refresh_token: str | None) -> None:
        if not access_token:
            raise ValueError("access_token is required")
        self._save(
            {
                "auth_method": METHOD_EXTERNAL,
                "access_token": access_token,
                "refresh_token": refresh_token or "",
                "account_id": extract_account_id(access_token),
            }
        )
        logger.info("Stored device authorization tokens")

    async def import_external_credentials(self) -> str:
        """Copy credentials from the external CLI's auth file.

        An API key wins over tokens when both are present.

        Raises:
            ConfigurationError: If the file is missing, unreadable or holds
                no usable credentials.
        """
        path = self.external_path
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ConfigurationError(f"Cannot read {path}: file not found") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Invalid credentials file {path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Invalid credentials file {path}: expected an object")

        api_key = raw.get("openai_api_key") or raw.get("OPENAI_API_KEY")
        if api_key:
            await self.put(api_key=api_key)
            return METHOD_API_KEY

        tokens = raw.get("tokens") or {}
        access_token = tokens.get("access_token") if isinstance(tokens, dict) else None
        if access_token:
            await self.save_tokens(access_token, tokens.get("refresh_token"))
            account_id = tokens.get("account_id")
            if account_id:
                data = self._load()
                data["account_id"] = account_id
                self._save(data)
            return METHOD_EXTERNAL

        raise ConfigurationError(f"No valid credentials found in {path}")


__all__ = ["LocalConfigStore", "extract_account_id"]
