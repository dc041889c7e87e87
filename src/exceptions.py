"""BlockPilot exception hierarchy.

Base exceptions for all client layers with correlation ID support.

Usage:
    from src.exceptions import NetworkError, ProtocolError, TransportError

    try:
        authorization = await flow.begin()
    except ProtocolError as e:
        logger.error("Device code request rejected: %s (%s)", e, e.correlation_id)
"""

import uuid


class BlockPilotError(Exception):
    """Base exception for all BlockPilot errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class NetworkError(BlockPilotError):
    """A request could not complete (connection, timeout, DNS)."""

    pass


class ProtocolError(BlockPilotError):
    """The server answered with a malformed or unexpected payload."""

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class TransportError(BlockPilotError):
    """The chat stream could not be opened or broke while reading.

    ``message`` is already phrased for the end user.
    """

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class ActionError(BlockPilotError):
    """A document mutation failed."""

    def __init__(self, message: str, *, action: str | None = None, **kwargs):
        self.action = action
        super().__init__(message, **kwargs)


class AuthRejected(BlockPilotError):
    """The device authorization was denied or expired."""

    def __init__(self, message: str, *, reason: str, **kwargs):
        self.reason = reason
        super().__init__(message, **kwargs)


class DocumentError(BlockPilotError):
    """Errors raised by the document model (missing container, key clash)."""

    pass


class InvalidTransitionError(BlockPilotError):
    """An auth menu transition is not allowed from the current state."""

    pass


class ConfigurationError(BlockPilotError):
    """Errors from application configuration."""

    pass
