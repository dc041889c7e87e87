"""Unit tests for ConversationSession.

Covers:
- streaming deltas and actions into a single assistant message
- done explanation and fallback content
- error events and transport failures rendered into the log
- the bounded review loop
- concurrent and blank instructions
"""

from __future__ import annotations

import asyncio

import pytest

from src.chat.messages import Role
from src.chat.session import (
    NO_CHANGES_FALLBACK,
    REVIEW_INSTRUCTION,
    ConversationSession,
    SessionState,
)
from src.document.executor import ActionExecutor
from src.document.model import CanvasDocument
from src.exceptions import NetworkError, TransportError
from tests.helpers.fakes import ScriptedChatClient, StaticSnapshots
from tests.helpers.streams import action, delta, done, error


@pytest.fixture
def document() -> CanvasDocument:
    return CanvasDocument()


@pytest.fixture
def make_session(document, test_settings, fake_sleep):
    def factory(*scripts, snapshots=None) -> tuple[ConversationSession, ScriptedChatClient]:
        client = ScriptedChatClient(*scripts)
        session = ConversationSession(
            client,
            ActionExecutor(document),
            snapshots=snapshots,
            settings=test_settings,
            sleep=fake_sleep,
        )
        return session, client

    return factory


def contents(session: ConversationSession) -> list[tuple[Role, str]]:
    return [(m.role, m.content) for m in session.messages]


class TestTurn:
    """A single turn without review."""

    @pytest.mark.asyncio
    async def test_deltas_stream_into_one_message(self, make_session):
        session, _ = make_session([delta("Hello"), delta(", world"), done()])

        report = await session.send("hi")

        assert contents(session) == [(Role.USER, "hi"), (Role.ASSISTANT, "Hello, world")]
        assert report.actions_applied == 0
        assert report.review_rounds == 0
        assert not report.errored
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_explanation_seeds_content_without_deltas(self, make_session, document):
        session, _ = make_session([action("add_component", comp_type="button"), done("Added a button.")])

        await session.send("add a button")

        reply = session.messages[-1]
        assert reply.content == "Added a button.\n+ add_component: button1"
        assert reply.applied
        assert document.name_exists("button1")

    @pytest.mark.asyncio
    async def test_explanation_ignored_after_deltas(self, make_session):
        session, _ = make_session([delta("Streamed"), done("Summary")])

        await session.send("hi")

        assert session.messages[-1].content == "Streamed"

    @pytest.mark.asyncio
    async def test_no_changes_fallback(self, make_session):
        session, _ = make_session([done()])

        await session.send("hi")

        assert session.messages[-1].content == NO_CHANGES_FALLBACK
        assert not session.messages[-1].applied

    @pytest.mark.asyncio
    async def test_stream_without_done_still_finishes(self, make_session):
        session, _ = make_session([action("add_component", comp_type="text")], [done()])
        session.max_review_rounds = 0

        report = await session.send("add text")

        assert report.actions_applied == 1
        assert session.messages[-1].applied

    @pytest.mark.asyncio
    async def test_failed_action_is_reported_inline(self, make_session):
        session, _ = make_session([action("remove_component", name="ghost"), done()])

        report = await session.send("remove ghost")

        assert report.actions_applied == 0
        assert "! remove_component failed: no component named 'ghost'" in session.messages[-1].content

    @pytest.mark.asyncio
    async def test_unknown_action_is_ignored(self, make_session):
        session, _ = make_session([action("teleport", to="moon"), done()])

        report = await session.send("go")

        assert report.actions_applied == 0
        assert session.messages[-1].content == NO_CHANGES_FALLBACK

    @pytest.mark.asyncio
    async def test_request_carries_snapshot_and_components(self, make_session, document):
        session, client = make_session(
            [action("add_component", comp_type="table"), done()],
            [done()],
            [done()],
            snapshots=StaticSnapshots("first", "review"),
        )
        await session.send("add a table")

        assert client.requests[0] == {"message": "add a table", "screenshot": "first", "component_list": []}
        assert client.requests[1]["screenshot"] == "review"
        assert client.requests[1]["component_list"] == ["table1"]


class TestErrors:
    """Errors end the turn and land in the log."""

    @pytest.mark.asyncio
    async def test_error_event_replaces_content(self, make_session):
        session, client = make_session(
            [delta("partial"), error("AI service error: overloaded"), delta("ignored")],
            snapshots=StaticSnapshots("a", "b"),
        )

        report = await session.send("hi")

        assert session.messages[-1].content == "AI service error: overloaded"
        assert report.errored
        assert report.review_rounds == 0
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_error_after_action_skips_review(self, make_session):
        session, client = make_session(
            [action("add_component", comp_type="text"), error("boom")],
            snapshots=StaticSnapshots("a", "b"),
        )

        report = await session.send("hi")

        assert report.actions_applied == 1
        assert report.review_rounds == 0
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_open_failure_appends_error_message(self, make_session):
        session, _ = make_session(TransportError("AI service error: Bad gateway"))

        report = await session.send("hi")

        assert contents(session) == [
            (Role.USER, "hi"),
            (Role.ASSISTANT, "Error: AI service error: Bad gateway"),
        ]
        assert report.errored
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_mid_stream_failure_keeps_partial_text(self, make_session):
        session, _ = make_session([delta("Working on it"), NetworkError("connection reset")])

        await session.send("hi")

        assert contents(session) == [
            (Role.USER, "hi"),
            (Role.ASSISTANT, "Working on it"),
            (Role.ASSISTANT, "Error: connection reset"),
        ]

    @pytest.mark.asyncio
    async def test_failure_before_any_text_fills_placeholder(self, make_session):
        session, _ = make_session([NetworkError("connection reset")])

        await session.send("hi")

        assert contents(session) == [(Role.USER, "hi"), (Role.ASSISTANT, "Error: connection reset")]

    @pytest.mark.asyncio
    async def test_snapshot_failure_is_not_fatal(self, make_session):
        session, client = make_session([done()], snapshots=StaticSnapshots(RuntimeError("renderer gone")))

        report = await session.send("hi")

        assert not report.errored
        assert client.requests[0]["screenshot"] is None

    @pytest.mark.asyncio
    async def test_session_accepts_next_turn_after_error(self, make_session):
        session, _ = make_session(TransportError("down"), [delta("back"), done()])

        await session.send("first")
        await session.send("second")

        assert session.messages[-1].content == "back"


class TestReview:
    """Review rounds after applied actions."""

    @pytest.mark.asyncio
    async def test_no_actions_no_review(self, make_session, fake_sleep):
        snapshots = StaticSnapshots("a", "b", "c")
        session, client = make_session([delta("Sure"), done()], snapshots=snapshots)

        report = await session.send("hi")

        assert report.review_rounds == 0
        assert len(client.requests) == 1
        assert snapshots.calls == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_one_round_when_review_finds_nothing(self, make_session, fake_sleep):
        session, client = make_session(
            [action("add_component", comp_type="text"), done()],
            [delta("Looks good."), done()],
            snapshots=StaticSnapshots("a", "b", "c"),
        )

        report = await session.send("add text")

        assert report.review_rounds == 1
        assert client.requests[1]["message"] == REVIEW_INSTRUCTION
        assert fake_sleep.delays == [0.8]
        assert [m.role for m in session.messages] == [Role.USER, Role.ASSISTANT, Role.ASSISTANT]
        assert session.messages[-1].content == "Looks good."

    @pytest.mark.asyncio
    async def test_review_is_bounded(self, make_session, fake_sleep, document):
        session, client = make_session(
            [action("add_component", comp_type="text"), done()],
            [action("add_component", comp_type="text"), done()],
            [action("add_component", comp_type="text"), done()],
            [done()],
            snapshots=StaticSnapshots("a", "b", "c", "d"),
        )

        report = await session.send("add text")

        assert report.review_rounds == 2
        assert len(client.requests) == 3
        assert fake_sleep.delays == [0.8, 0.8]
        assert sorted(document.component_names()) == ["text1", "text2", "text3"]
        assert session.messages[-1].content == "\n+ add_component: text3"

    @pytest.mark.asyncio
    async def test_missing_snapshot_skips_review(self, make_session):
        session, client = make_session(
            [action("add_component", comp_type="text"), done()],
            [done()],
            snapshots=StaticSnapshots("a"),
        )

        report = await session.send("add text")

        assert report.review_rounds == 0
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_no_snapshot_provider_skips_review(self, make_session):
        session, client = make_session([action("add_component", comp_type="text"), done()], [done()])

        report = await session.send("add text")

        assert report.review_rounds == 0
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_review_error_stops_loop(self, make_session):
        session, client = make_session(
            [action("add_component", comp_type="text"), done()],
            TransportError("down"),
            [done()],
            snapshots=StaticSnapshots("a", "b", "c"),
        )

        report = await session.send("add text")

        assert report.review_rounds == 1
        assert len(client.requests) == 2
        assert session.messages[-1].content == "Error: down"


class TestSendGuards:
    """Blank and concurrent instructions are ignored."""

    @pytest.mark.asyncio
    async def test_blank_instruction(self, make_session):
        session, client = make_session([done()])

        assert await session.send("   ") is None

        assert len(session.messages) == 0
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_concurrent_send_is_rejected(self, make_session):
        gate = asyncio.Event()

        class SlowSnapshots:
            async def capture(self):
                await gate.wait()
                return None

        session, client = make_session([done()], snapshots=SlowSnapshots())

        first = asyncio.create_task(session.send("one"))
        await asyncio.sleep(0)
        assert session.sending

        assert await session.send("two") is None

        gate.set()
        report = await first
        assert report is not None
        assert [m.content for m in session.messages if m.role == Role.USER] == ["one"]
        assert len(client.requests) == 1
