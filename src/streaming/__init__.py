"""Chat stream protocol: event types, incremental decoder, error mapping."""

from src.streaming.decoder import SSEDecoder, decode_events
from src.streaming.errors import describe_service_error
from src.streaming.events import ActionEvent, DeltaEvent, DoneEvent, ErrorEvent, StreamEvent, parse_event

__all__ = [
    "ActionEvent",
    "DeltaEvent",
    "DoneEvent",
    "ErrorEvent",
    "SSEDecoder",
    "StreamEvent",
    "decode_events",
    "describe_service_error",
    "parse_event",
]
