"""Conversation: chat stream client, message log, session orchestration."""

from src.chat.client import ChatStreamClient
from src.chat.messages import ConversationMessage, MessageHandle, MessageLog, Role
from src.chat.session import ConversationSession, SessionState, TurnReport
from src.chat.snapshot import FileSnapshotProvider, SnapshotProvider

__all__ = [
    "ChatStreamClient",
    "ConversationMessage",
    "ConversationSession",
    "FileSnapshotProvider",
    "MessageHandle",
    "MessageLog",
    "Role",
    "SessionState",
    "SnapshotProvider",
    "TurnReport",
]
