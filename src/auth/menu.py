"""Auth menu state machine.

Chooses how the user authenticates (API key, device code, or importing the
external CLI's credentials) and gates the chat until a credential exists.

    MENU <-> API_KEY_FORM
    MENU  -> DEVICE_FLOW -> CHAT | MENU
    MENU  -> IMPORT_EXTERNAL -> CHAT | MENU
    *     -> MENU (open_settings)
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from src.auth.device_flow import Authenticated
from src.exceptions import BlockPilotError, InvalidTransitionError

if TYPE_CHECKING:
    from src.auth.config_store import AuthStatus, ConfigStore
    from src.auth.device_flow import DeviceAuthFlow, DeviceAuthorization, PollingTask, PollOutcome

logger = logging.getLogger(__name__)


class AuthMenuState(StrEnum):
    MENU = "menu"
    API_KEY_FORM = "api_key_form"
    DEVICE_FLOW = "device_flow"
    IMPORT_EXTERNAL = "import_external"
    CHAT = "chat"


class AuthMenuController:
    """Tracks which auth screen is active and whether chat is unlocked."""

    def __init__(self, store: ConfigStore, flow: DeviceAuthFlow) -> None:
        self.store = store
        self.flow = flow
        self.state = AuthMenuState.MENU
        self.authenticated = False
        self.status: AuthStatus | None = None
        self.last_error: str | None = None
        self.authorization: DeviceAuthorization | None = None
        self._polling: PollingTask | None = None

    def _require(self, *allowed: AuthMenuState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(
                f"Cannot leave {self.state.value} this way (expected {', '.join(s.value for s in allowed)})"
            )

    def _move(self, state: AuthMenuState) -> None:
        logger.debug("Auth menu: %s -> %s", self.state.value, state.value)
        self.state = state

    async def refresh(self) -> AuthStatus:
        """Reload the auth status; an authenticated user lands in the chat."""
        self.status = await self.store.get()
        self.authenticated = self.status.authenticated
        if self.authenticated and self.state == AuthMenuState.MENU:
            self._move(AuthMenuState.CHAT)
        return self.status

    def open_api_key_form(self) -> None:
        self._require(AuthMenuState.MENU)
        self._move(AuthMenuState.API_KEY_FORM)

    def back(self) -> None:
        self._require(AuthMenuState.API_KEY_FORM)
        self._move(AuthMenuState.MENU)

    async def submit_api_key(self, api_key: str) -> bool:
        """Store an API key; returns False (staying on the form) for blank input."""
        self._require(AuthMenuState.API_KEY_FORM)
        if not api_key.strip():
            self.last_error = "API key must not be empty"
            return False
        try:
            await self.store.put(api_key=api_key.strip())
        except BlockPilotError as e:
            self.last_error = f"Failed to save API key: {e}"
            logger.warning("Failed to save API key: %s", e)
            return False
        self.last_error = None
        self.authenticated = True
        self._move(AuthMenuState.CHAT)
        return True

    async def start_device_flow(self) -> DeviceAuthorization:
        """Request a device code and start polling for approval.

        Raises:
            NetworkError, ProtocolError: The device code request failed; the
                menu stays where it was.
        """
        self._require(AuthMenuState.MENU)
        authorization = await self.flow.begin()
        self.authorization = authorization
        self.last_error = None
        self._polling = self.flow.start_polling(authorization)
        self._move(AuthMenuState.DEVICE_FLOW)
        return authorization

    async def wait_for_device_flow(self) -> PollOutcome | None:
        """Wait for the device flow to end and move to CHAT or back to MENU."""
        self._require(AuthMenuState.DEVICE_FLOW)
        if self._polling is None:
            raise InvalidTransitionError("No device authorization is being polled")

        try:
            outcome = await self._polling.wait()
        except BlockPilotError as e:
            # Approved, but persisting the tokens failed
            self.last_error = f"Could not store credentials: {e}"
            self._finish_device_flow(AuthMenuState.MENU)
            return None

        if outcome is None:
            # Cancelled underneath us
            self._finish_device_flow(AuthMenuState.MENU)
        elif isinstance(outcome, Authenticated):
            self.authenticated = True
            self._finish_device_flow(AuthMenuState.CHAT)
        else:
            rejection = outcome.as_error()
            logger.info("Device authorization rejected (%s)", rejection.reason)
            self.last_error = str(rejection)
            self._finish_device_flow(AuthMenuState.MENU)
        return outcome

    def cancel_device_flow(self) -> None:
        self._require(AuthMenuState.DEVICE_FLOW)
        self.flow.cancel()
        self._finish_device_flow(AuthMenuState.MENU)

    def _finish_device_flow(self, state: AuthMenuState) -> None:
        self.authorization = None
        self._polling = None
        self._move(state)

    async def import_external(self) -> str | None:
        """Import the external CLI's credentials; returns the auth method on success."""
        self._require(AuthMenuState.MENU)
        self._move(AuthMenuState.IMPORT_EXTERNAL)
        try:
            method = await self.store.import_external_credentials()
        except BlockPilotError as e:
            self.last_error = str(e)
            logger.warning("Credential import failed: %s", e)
            self._move(AuthMenuState.MENU)
            return None
        self.last_error = None
        self.authenticated = True
        self._move(AuthMenuState.CHAT)
        return method

    def enter_chat(self) -> None:
        if not self.authenticated:
            raise InvalidTransitionError("Chat requires an authenticated AI connection")
        self._move(AuthMenuState.CHAT)

    def open_settings(self) -> None:
        """Return to the menu from anywhere, even when authenticated."""
        if self.state == AuthMenuState.DEVICE_FLOW:
            self.flow.cancel()
            self._finish_device_flow(AuthMenuState.MENU)
            return
        self._move(AuthMenuState.MENU)


__all__ = ["AuthMenuController", "AuthMenuState"]
