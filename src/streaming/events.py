"""Stream event types for the chat stream protocol.

Each significant line of the chat stream carries one JSON object with a
``type`` discriminator. Only four shapes are understood; anything else is
dropped by ``parse_event``.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class DeltaEvent(_Event):
    """A fragment of assistant text."""

    type: Literal["delta"] = "delta"
    text: str = Field(alias="data")


class ActionEvent(_Event):
    """A structured document mutation requested by the model."""

    type: Literal["action"] = "action"
    name: str = Field(alias="action")
    params: dict[str, Any] = Field(default_factory=dict)


class DoneEvent(_Event):
    """End of the turn, with the model's final explanation."""

    type: Literal["done"] = "done"
    explanation: str = ""


class ErrorEvent(_Event):
    """The server gave up on the turn."""

    type: Literal["error"] = "error"
    message: str = Field(alias="data")


StreamEvent = Annotated[
    DeltaEvent | ActionEvent | DoneEvent | ErrorEvent,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(payload: Any) -> DeltaEvent | ActionEvent | DoneEvent | ErrorEvent | None:
    """Classify a decoded JSON payload into a stream event.

    Returns None for non-objects, unknown ``type`` values and payloads whose
    fields do not match their type.
    """
    if not isinstance(payload, dict):
        return None
    # The server emits "params": null when tool arguments fail to decode
    if payload.get("type") == "action" and payload.get("params") is None:
        payload = {**payload, "params": {}}
    if payload.get("type") == "done" and payload.get("explanation") is None:
        payload = {**payload, "explanation": ""}
    try:
        return _event_adapter.validate_python(payload)
    except ValidationError:
        logger.debug("Ignoring stream payload of type %r", payload.get("type"))
        return None


__all__ = [
    "ActionEvent",
    "DeltaEvent",
    "DoneEvent",
    "ErrorEvent",
    "StreamEvent",
    "parse_event",
]
