"""Conversation session: one user turn plus automatic review rounds.

A turn streams the model's answer into a fresh assistant message, applies
every ``action`` event to the document as it arrives, and, if anything was
applied, runs up to ``max_review_rounds`` review rounds: wait for the
canvas to settle, capture it, and ask the model to check its own work.

Errors end the turn, never the session: they are rendered into the
message log.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import httpx

from src.chat.messages import MessageLog, Role
from src.document.executor import ActionFailure, MutationSummary
from src.exceptions import BlockPilotError
from src.settings import Settings, get_settings
from src.streaming.events import ActionEvent, DeltaEvent, DoneEvent, ErrorEvent

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.chat.client import ChatStreamClient
    from src.chat.messages import ConversationMessage, MessageHandle
    from src.chat.snapshot import SnapshotProvider
    from src.document.executor import ActionExecutor

logger = logging.getLogger(__name__)

REVIEW_INSTRUCTION = (
    "Review the attached screenshot of the canvas after your last changes. "
    "Fix overlapping, misaligned or missing components with tool calls. "
    "If everything already looks right, reply briefly without calling any tools."
)
DONE_FALLBACK = "Done."
NO_CHANGES_FALLBACK = "No changes were made."


class SessionState(StrEnum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    REVIEWING = "reviewing"


@dataclass
class TurnResult:
    """Outcome of one streamed exchange (user turn or review round)."""

    actions_applied: int = 0
    errored: bool = False
    explanation: str = ""


@dataclass
class TurnReport:
    """Outcome of ``ConversationSession.send``."""

    actions_applied: int
    review_rounds: int
    errored: bool


class ConversationSession:
    """Orchestrates user turns against the chat stream and the document.

    Usage::

        session = ConversationSession(ChatStreamClient(), ActionExecutor(document))
        report = await session.send("Add a table of users")
        for message in session.messages:
            print(message.role, message.content)
    """

    def __init__(
        self,
        client: ChatStreamClient,
        executor: ActionExecutor,
        snapshots: SnapshotProvider | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        settings = settings or get_settings()
        self.client = client
        self.executor = executor
        self.snapshots = snapshots
        self.max_review_rounds = settings.max_review_rounds
        self.review_delay = settings.review_delay_seconds
        self.log = MessageLog()
        self.state = SessionState.IDLE
        self.review_rounds = 0
        self._sleep = sleep

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return self.log.messages

    @property
    def sending(self) -> bool:
        return self.state != SessionState.IDLE

    async def send(self, instruction: str) -> TurnReport | None:
        """Run one user turn and its review rounds.

        Returns None without doing anything when a turn is already running
        or the instruction is blank.
        """
        if self.sending:
            logger.debug("Ignoring instruction while a turn is in progress")
            return None
        text = instruction.strip()
        if not text:
            return None

        self.state = SessionState.SENDING
        self.review_rounds = 0
        try:
            self.log.append(Role.USER, text)
            snapshot = await self._capture()
            result = await self._run_turn(text, snapshot)
            if result.actions_applied > 0 and not result.errored:
                await self._review()
            return TurnReport(
                actions_applied=result.actions_applied,
                review_rounds=self.review_rounds,
                errored=result.errored,
            )
        finally:
            self.state = SessionState.IDLE

    async def _capture(self) -> str | None:
        if self.snapshots is None:
            return None
        try:
            return await self.snapshots.capture()
        except Exception:
            logger.warning("Snapshot capture failed; continuing without one", exc_info=True)
            return None

    def _component_list(self) -> list[str] | None:
        document = getattr(self.executor, "document", None)
        names = getattr(document, "component_names", None)
        if names is None:
            return None
        try:
            return list(names())
        except Exception:
            logger.debug("Could not list document components", exc_info=True)
            return None

    async def _run_turn(self, message: str, snapshot: str | None) -> TurnResult:
        """Stream one exchange into a new assistant message."""
        result = TurnResult()
        handle: MessageHandle | None = None

        try:
            async with self.client.open(
                message,
                screenshot=snapshot,
                component_list=self._component_list(),
            ) as events:
                handle = self.log.append(Role.ASSISTANT)
                if self.state == SessionState.SENDING:
                    self.state = SessionState.STREAMING
                saw_delta = False
                finished = False

                async for event in events:
                    if isinstance(event, DeltaEvent):
                        saw_delta = True
                        handle.append_text(event.text)
                    elif isinstance(event, ActionEvent):
                        self._apply(event, handle, result)
                    elif isinstance(event, DoneEvent):
                        result.explanation = event.explanation
                        self._finish(handle, result, saw_delta)
                        finished = True
                    elif isinstance(event, ErrorEvent):
                        logger.warning("Chat stream reported an error: %s", event.message)
                        handle.set_content(event.message)
                        result.errored = True
                        break

                if not finished and not result.errored:
                    logger.debug("Chat stream ended without a done event")
                    self._finish(handle, result, saw_delta)
        except (BlockPilotError, httpx.HTTPError) as e:
            logger.warning("Turn failed: %s", e)
            result.errored = True
            error_text = f"Error: {e}"
            if handle is None:
                self.log.append(Role.ASSISTANT, error_text)
            elif not handle.content:
                handle.set_content(error_text)
            else:
                # Keep what already streamed
                self.log.append(Role.ASSISTANT, error_text)

        return result

    def _apply(self, event: ActionEvent, handle: MessageHandle, result: TurnResult) -> None:
        outcome = self.executor.apply(event.name, event.params)
        if isinstance(outcome, MutationSummary):
            handle.append_text(outcome.line)
            result.actions_applied += 1
        elif isinstance(outcome, ActionFailure):
            handle.append_text(outcome.line)

    def _finish(self, handle: MessageHandle, result: TurnResult, saw_delta: bool) -> None:
        if not saw_delta and result.explanation:
            handle.set_content(result.explanation + handle.content)
        if not handle.content:
            handle.set_content(DONE_FALLBACK if result.actions_applied else NO_CHANGES_FALLBACK)
        handle.mark_applied(result.actions_applied > 0)

    async def _review(self) -> None:
        """Let the model check its changes, for at most ``max_review_rounds`` rounds."""
        self.state = SessionState.REVIEWING
        while self.review_rounds < self.max_review_rounds:
            await self._sleep(self.review_delay)
            snapshot = await self._capture()
            if snapshot is None:
                logger.info("No snapshot available; skipping review")
                return

            self.review_rounds += 1
            logger.info("Review round %d/%d", self.review_rounds, self.max_review_rounds)
            result = await self._run_turn(REVIEW_INSTRUCTION, snapshot)
            if result.errored or result.actions_applied == 0:
                return


__all__ = [
    "REVIEW_INSTRUCTION",
    "ConversationSession",
    "SessionState",
    "TurnReport",
    "TurnResult",
]
