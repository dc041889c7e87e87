"""Unit tests for AuthMenuController transitions."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import httpx
import pytest

from src.auth.config_store import AuthStatus
from src.auth.device_flow import Authenticated, DeviceAuthFlow, Rejected
from src.auth.menu import AuthMenuController, AuthMenuState
from src.exceptions import ConfigurationError, InvalidTransitionError, NetworkError

DEVICE_RESPONSE = {
    "device_code": "dev-123",
    "user_code": "ABCD-EFGH",
    "verification_uri": "https://auth.test/activate",
    "expires_in": 900,
    "interval": 5,
}


class AuthServer:
    """MockTransport handler serving the device code and token endpoints."""

    def __init__(self, *token_responses: dict):
        self.token_responses = list(token_responses) or [{"error": "authorization_pending"}]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/device/code"):
            return httpx.Response(200, json=DEVICE_RESPONSE)
        body = self.token_responses.pop(0) if len(self.token_responses) > 1 else self.token_responses[0]
        return httpx.Response(400 if "error" in body else 200, json=body)


@pytest.fixture
def make_menu(config_store, test_settings, fake_sleep):
    def factory(*token_responses: dict) -> AuthMenuController:
        flow = DeviceAuthFlow(
            config_store,
            settings=test_settings,
            transport=httpx.MockTransport(AuthServer(*token_responses)),
            sleep=fake_sleep,
            clock=fake_sleep.clock,
        )
        return AuthMenuController(config_store, flow)

    return factory


class TestRefresh:
    """refresh() gates the chat on stored credentials."""

    @pytest.mark.asyncio
    async def test_unauthenticated_stays_in_menu(self, make_menu):
        menu = make_menu()

        await menu.refresh()

        assert menu.state == AuthMenuState.MENU
        assert not menu.authenticated

    @pytest.mark.asyncio
    async def test_authenticated_enters_chat(self, make_menu, config_store):
        config_store.status = AuthStatus(has_api_key=True)
        menu = make_menu()

        await menu.refresh()

        assert menu.state == AuthMenuState.CHAT
        assert menu.authenticated

    def test_enter_chat_requires_credentials(self, make_menu):
        with pytest.raises(InvalidTransitionError):
            make_menu().enter_chat()


class TestApiKeyForm:
    """MENU <-> API_KEY_FORM -> CHAT."""

    @pytest.mark.asyncio
    async def test_submit_key(self, make_menu, config_store):
        menu = make_menu()
        menu.open_api_key_form()

        assert await menu.submit_api_key(" sk-test ")

        assert config_store.api_keys == ["sk-test"]
        assert menu.state == AuthMenuState.CHAT
        assert menu.authenticated

    @pytest.mark.asyncio
    async def test_blank_key_stays_on_form(self, make_menu, config_store):
        menu = make_menu()
        menu.open_api_key_form()

        assert not await menu.submit_api_key("   ")

        assert config_store.api_keys == []
        assert menu.state == AuthMenuState.API_KEY_FORM
        assert menu.last_error

    @pytest.mark.asyncio
    async def test_store_failure_stays_on_form(self, make_menu, config_store, caplog):
        config_store.put = AsyncMock(side_effect=NetworkError("backend down"))
        menu = make_menu()
        menu.open_api_key_form()

        with caplog.at_level(logging.WARNING, logger="src.auth.menu"):
            assert not await menu.submit_api_key("sk-test")

        assert menu.state == AuthMenuState.API_KEY_FORM
        assert menu.last_error == "Failed to save API key: backend down"
        record = next(r for r in caplog.records if r.name == "src.auth.menu")
        assert record.msg == "Failed to save API key: %s"
        assert record.getMessage() == "Failed to save API key: backend down"

    def test_back(self, make_menu):
        menu = make_menu()
        menu.open_api_key_form()

        menu.back()

        assert menu.state == AuthMenuState.MENU

    @pytest.mark.asyncio
    async def test_submit_outside_form_is_rejected(self, make_menu):
        with pytest.raises(InvalidTransitionError):
            await make_menu().submit_api_key("sk-test")


class TestDeviceFlow:
    """MENU -> DEVICE_FLOW -> CHAT | MENU."""

    @pytest.mark.asyncio
    async def test_approval_enters_chat(self, make_menu, config_store):
        menu = make_menu({"error": "authorization_pending"}, {"access_token": "T", "refresh_token": "R"})

        authorization = await menu.start_device_flow()
        assert menu.state == AuthMenuState.DEVICE_FLOW
        assert authorization.user_code == "ABCD-EFGH"

        outcome = await menu.wait_for_device_flow()

        assert outcome == Authenticated(access_token="T", refresh_token="R")
        assert menu.state == AuthMenuState.CHAT
        assert menu.authenticated
        assert menu.authorization is None
        assert config_store.saved_tokens == [("T", "R")]

    @pytest.mark.asyncio
    async def test_denial_returns_to_menu(self, make_menu):
        menu = make_menu({"error": "access_denied"})

        await menu.start_device_flow()
        outcome = await menu.wait_for_device_flow()

        assert outcome == Rejected(reason="access_denied")
        assert menu.state == AuthMenuState.MENU
        assert not menu.authenticated
        assert menu.last_error == "Authorization access denied"

    @pytest.mark.asyncio
    async def test_save_failure_returns_to_menu(self, make_menu, config_store):
        config_store.save_error = NetworkError("backend down")
        menu = make_menu({"access_token": "T"})

        await menu.start_device_flow()
        outcome = await menu.wait_for_device_flow()

        assert outcome is None
        assert menu.state == AuthMenuState.MENU
        assert "backend down" in menu.last_error

    @pytest.mark.asyncio
    async def test_cancel_returns_to_menu(self, make_menu, config_store):
        menu = make_menu()
        await menu.start_device_flow()
        await asyncio.sleep(0)

        menu.cancel_device_flow()

        assert menu.state == AuthMenuState.MENU
        assert not menu.flow.polling
        assert config_store.saved_tokens == []

    @pytest.mark.asyncio
    async def test_open_settings_cancels_polling(self, make_menu):
        menu = make_menu()
        await menu.start_device_flow()

        menu.open_settings()

        assert menu.state == AuthMenuState.MENU
        assert not menu.flow.polling

    @pytest.mark.asyncio
    async def test_begin_failure_keeps_menu(self, config_store, test_settings, fake_sleep):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        flow = DeviceAuthFlow(
            config_store, settings=test_settings, transport=httpx.MockTransport(handler), sleep=fake_sleep
        )
        menu = AuthMenuController(config_store, flow)

        with pytest.raises(NetworkError):
            await menu.start_device_flow()

        assert menu.state == AuthMenuState.MENU


class TestImportExternal:
    """MENU -> IMPORT_EXTERNAL -> CHAT | MENU."""

    @pytest.mark.asyncio
    async def test_import_success(self, make_menu, config_store):
        config_store.import_method = "codex_chatgpt"
        menu = make_menu()

        assert await menu.import_external() == "codex_chatgpt"

        assert menu.state == AuthMenuState.CHAT
        assert menu.authenticated

    @pytest.mark.asyncio
    async def test_import_failure(self, make_menu, config_store):
        config_store.import_error = ConfigurationError("Cannot read auth.json: file not found")
        menu = make_menu()

        assert await menu.import_external() is None

        assert menu.state == AuthMenuState.MENU
        assert "file not found" in menu.last_error


class TestOpenSettings:
    """Settings reopen the menu even when authenticated."""

    @pytest.mark.asyncio
    async def test_from_chat(self, make_menu, config_store):
        config_store.status = AuthStatus(has_api_key=True)
        menu = make_menu()
        await menu.refresh()

        menu.open_settings()

        assert menu.state == AuthMenuState.MENU
        assert menu.authenticated
