"""Chat stream client.

Opens ``POST /api/ai/chat/stream`` on the builder backend and hands the
decoded event stream to the caller. The backend relays the model's tool
calls as ``action`` events.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx

from src.exceptions import TransportError
from src.settings import Settings, get_settings
from src.streaming.decoder import decode_events
from src.streaming.errors import describe_service_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from src.streaming.events import StreamEvent

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/ai/chat/stream"
_CONNECT_TIMEOUT = 10.0


class ChatStreamClient:
    """Opens chat streams against the builder backend.

    Usage::

        client = ChatStreamClient()
        async with client.open("Add a login form") as events:
            async for event in events:
                ...
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.base_url = self.settings.api_base_url.rstrip("/")
        self.stream_timeout = self.settings.stream_timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        token = self.settings.api_token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def build_payload(
        message: str,
        screenshot: str | None = None,
        component_list: list[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": message}
        if screenshot:
            payload["screenshot"] = screenshot
        if component_list:
            payload["componentList"] = component_list
        return payload

    @asynccontextmanager
    async def open(
        self,
        message: str,
        *,
        screenshot: str | None = None,
        component_list: list[str] | None = None,
    ) -> AsyncIterator[AsyncIterator[StreamEvent]]:
        """Open a stream for one turn.

        Raises:
            TransportError: If the stream cannot be opened (non-2xx status,
                connection failure) or breaks while being read.
        """
        payload = self.build_payload(message, screenshot, component_list)
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.stream_timeout, connect=_CONNECT_TIMEOUT),
                transport=self._transport,
            ) as client:
                async with client.stream(
                    "POST",
                    STREAM_PATH,
                    json=payload,
                    headers=self._headers(),
                ) as response:
                    if not response.is_success:
                        body = await response.aread()
                        raise TransportError(
                            describe_service_error(response.status_code, body),
                            status_code=response.status_code,
                        )

                    logger.debug("Chat stream opened (screenshot=%s)", screenshot is not None)
                    events = decode_events(response.aiter_text())
                    try:
                        yield events
                    finally:
                        await events.aclose()
        except httpx.TimeoutException as e:
            raise TransportError(f"AI request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"AI request failed: {e}") from e


__all__ = ["STREAM_PATH", "ChatStreamClient"]
