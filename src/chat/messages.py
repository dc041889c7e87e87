"""Append-only conversation log.

Messages are never reordered or deleted. The only mutation allowed after
an append goes through the ``MessageHandle`` returned by that append, so a
streaming turn always writes to its own message and never to whatever
happens to sit at some index.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ConversationMessage:
    role: Role
    content: str = ""
    applied: bool = False


class MessageHandle:
    """Write access to one message of the log."""

    def __init__(self, message: ConversationMessage) -> None:
        self._message = message

    @property
    def message(self) -> ConversationMessage:
        return self._message

    @property
    def content(self) -> str:
        return self._message.content

    def append_text(self, text: str) -> None:
        self._message.content += text

    def set_content(self, content: str) -> None:
        self._message.content = content

    def mark_applied(self, applied: bool = True) -> None:
        self._message.applied = applied


class MessageLog:
    """Ordered, append-only list of conversation messages."""

    def __init__(self) -> None:
        self._messages: list[ConversationMessage] = []

    def append(self, role: Role, content: str = "") -> MessageHandle:
        message = ConversationMessage(role=role, content=content)
        self._messages.append(message)
        return MessageHandle(message)

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))


__all__ = ["ConversationMessage", "MessageHandle", "MessageLog", "Role"]
