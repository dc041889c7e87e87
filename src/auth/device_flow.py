"""OAuth2 device authorization grant (RFC 8628).

The flow asks the provider for a device code, shows the user a short code
and a verification URL, then polls the token endpoint in a background task
until the user approves, denies, or the code expires.

Usage::

    flow = DeviceAuthFlow(config_store)
    authorization = await flow.begin()
    print(authorization.user_code, authorization.verification_url)
    handle = flow.start_polling(authorization)
    outcome = await handle.wait()   # Authenticated | Rejected | None if cancelled
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from src.exceptions import AuthRejected, NetworkError, ProtocolError
from src.settings import Settings, get_settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.auth.config_store import ConfigStore

logger = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
TERMINAL_ERRORS = frozenset({"expired_token", "access_denied"})
PENDING_ERRORS = frozenset({"authorization_pending", "slow_down"})

_DEFAULT_EXPIRES_IN = 900
_DEFAULT_INTERVAL = 5


@dataclass(frozen=True)
class DeviceAuthorization:
    """One device authorization attempt, as issued by the provider."""

    device_code: str
    user_code: str
    verification_url: str
    expires_in_seconds: int
    poll_interval_seconds: int


@dataclass(frozen=True)
class Authenticated:
    """The user approved the device; tokens have been persisted."""

    access_token: str
    refresh_token: str | None = None


@dataclass(frozen=True)
class Rejected:
    """The authorization ended without tokens (denied or expired)."""

    reason: str
    description: str | None = None

    def as_error(self) -> AuthRejected:
        message = self.description or f"Authorization {self.reason.replace('_', ' ')}"
        return AuthRejected(message, reason=self.reason)


PollOutcome = Authenticated | Rejected


class PollingTask:
    """Owned handle on a running poll loop."""

    def __init__(self, task: asyncio.Task[PollOutcome]) -> None:
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    @property
    def outcome(self) -> PollOutcome | None:
        """The terminal outcome, or None while running or after cancellation."""
        if not self._task.done() or self._task.cancelled() or self._task.exception() is not None:
            return None
        return self._task.result()

    def cancel(self) -> None:
        """Stop polling without emitting an outcome. Idempotent."""
        if not self._task.done():
            self._task.cancel()

    async def wait(self) -> PollOutcome | None:
        """Wait for the terminal outcome; None if the poll task was cancelled.

        Cancelling the waiter leaves the poll task running and propagates
        ``CancelledError`` to the waiter; stopping the poll is ``cancel()``'s job.
        """
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            waiter_cancelled = current is not None and current.cancelling() > 0
            if self._task.cancelled() and not waiter_cancelled:
                return None
            raise


def classify_token_response(body: dict[str, Any]) -> PollOutcome | None:
    """Map one token-poll response to an outcome, or None to keep polling."""
    access_token = body.get("access_token")
    if access_token:
        return Authenticated(access_token=access_token, refresh_token=body.get("refresh_token") or None)

    error = body.get("error")
    if error in TERMINAL_ERRORS:
        return Rejected(reason=error, description=body.get("error_description"))
    if error in PENDING_ERRORS:
        logger.debug("Device authorization still pending (%s)", error)
        return None

    logger.warning(
        "Unrecognized device token response (error=%r, description=%r); continuing to poll",
        error,
        body.get("error_description"),
    )
    return None


class DeviceAuthFlow:
    """Drives the device authorization grant and persists the tokens."""

    def __init__(
        self,
        config_store: ConfigStore,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config_store = config_store
        self.settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._polling: PollingTask | None = None

    @property
    def polling(self) -> bool:
        return self._polling is not None and not self._polling.done

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    async def begin(self) -> DeviceAuthorization:
        """Request a device code from the provider.

        Raises:
            NetworkError: If the request could not complete.
            ProtocolError: If the response is not a usable device code.
        """
        form = {
            "client_id": self.settings.oauth_client_id,
            "scope": self.settings.oauth_scope,
            "audience": self.settings.oauth_audience,
        }
        try:
            async with self._client() as client:
                resp = await client.post(self.settings.device_code_url, data=form)
        except httpx.HTTPError as e:
            raise NetworkError(f"Device code request failed: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise ProtocolError(
                f"Device code response is not JSON (HTTP {resp.status_code})",
                status_code=resp.status_code,
            ) from e
        if not isinstance(body, dict):
            raise ProtocolError("Device code response is not an object", status_code=resp.status_code)

        if resp.is_error:
            detail = body.get("error_description") or body.get("error") or resp.reason_phrase
            raise ProtocolError(f"Device code request rejected: {detail}", status_code=resp.status_code)

        if not body.get("user_code") or not body.get("device_code"):
            raise ProtocolError("Device code response has no user code", status_code=resp.status_code)

        authorization = DeviceAuthorization(
            device_code=body["device_code"],
            user_code=body["user_code"],
            verification_url=(
                body.get("verification_uri_complete")
                or body.get("verification_uri")
                or self.settings.device_verification_url
            ),
            expires_in_seconds=int(body.get("expires_in") or _DEFAULT_EXPIRES_IN),
            poll_interval_seconds=int(body.get("interval") or _DEFAULT_INTERVAL),
        )
        logger.info(
            "Device code issued (user code %s, expires in %ds)",
            authorization.user_code,
            authorization.expires_in_seconds,
        )
        return authorization

    def start_polling(
        self,
        authorization: DeviceAuthorization,
        on_outcome: Callable[[PollOutcome], None] | None = None,
    ) -> PollingTask:
        """Start the background poll loop for ``authorization``.

        Any poll loop still running on this flow is cancelled first, so at
        most one is ever active.
        """
        if self.polling:
            logger.info("Replacing active device poll loop")
            self.cancel()

        task = asyncio.create_task(self._poll_loop(authorization, on_outcome))
        self._polling = PollingTask(task)
        return self._polling

    def cancel(self) -> None:
        """Stop the active poll loop, if any, without emitting an outcome."""
        if self._polling is not None:
            self._polling.cancel()
            logger.info("Device authorization polling cancelled")
        self._polling = None

    def poll_interval(self, authorization: DeviceAuthorization) -> float:
        return max(float(authorization.poll_interval_seconds), self.settings.device_poll_min_interval)

    async def _poll_loop(
        self,
        authorization: DeviceAuthorization,
        on_outcome: Callable[[PollOutcome], None] | None,
    ) -> PollOutcome:
        interval = self.poll_interval(authorization)
        deadline = self._clock() + authorization.expires_in_seconds

        async with self._client() as client:
            while True:
                await self._sleep(interval)
                if self._clock() >= deadline:
                    outcome: PollOutcome = Rejected(
                        reason="expired_token",
                        description="Device code expired before it was approved",
                    )
                    break

                body = await self._poll_once(client, authorization)
                if body is None:
                    continue
                resolved = classify_token_response(body)
                if resolved is not None:
                    outcome = resolved
                    break

        if isinstance(outcome, Authenticated):
            await self.config_store.save_tokens(outcome.access_token, outcome.refresh_token)
            logger.info("Device authorization approved")
        else:
            logger.info("Device authorization ended: %s", outcome.reason)

        if on_outcome is not None:
            on_outcome(outcome)
        return outcome

    async def _poll_once(
        self,
        client: httpx.AsyncClient,
        authorization: DeviceAuthorization,
    ) -> dict[str, Any] | None:
        form = {
            "grant_type": DEVICE_CODE_GRANT,
            "device_code": authorization.device_code,
            "client_id": self.settings.oauth_client_id,
        }
        try:
            resp = await client.post(self.settings.token_url, data=form)
        except httpx.HTTPError as e:
            logger.warning("Token poll failed, will retry: %s", e)
            return None

        try:
            body = resp.json()
        except ValueError:
            logger.warning("Token poll returned non-JSON body (HTTP %d), will retry", resp.status_code)
            return None
        if not isinstance(body, dict):
            logger.warning("Token poll returned a non-object body, will retry")
            return None
        return body


__all__ = [
    "DEVICE_CODE_GRANT",
    "Authenticated",
    "DeviceAuthFlow",
    "DeviceAuthorization",
    "PollOutcome",
    "PollingTask",
    "Rejected",
    "classify_token_response",
]
