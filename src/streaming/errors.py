"""Turn failed chat-stream responses into messages a user can act on."""

from __future__ import annotations

import json

AUTH_FAILED_MESSAGE = "AI authentication failed. Reconnect AI in Settings or update your API key."
GENERIC_SERVICE_MESSAGE = "AI service error"
MISSING_SCOPE_MESSAGE = (
    "Your OpenAI API key lacks the 'model.request' scope. "
    "Create a key with full permissions, or Reconnect AI in Settings and sign in instead."
)


def _extract_message(body: str) -> str:
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return body.strip()

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"].strip()
        if isinstance(error, str):
            return error.strip()
        if isinstance(payload.get("message"), str):
            return payload["message"].strip()
    return body.strip()


def describe_service_error(status_code: int, body: bytes | str) -> str:
    """Map an HTTP error response to a user-facing message.

    - a missing ``model.request`` scope gets a reconnect hint
    - 401 responses get the authentication hint
    - a provider ``{"error": {"message": ...}}`` or ``{"message": ...}`` is
      shown as ``AI service error: <message>``
    - non-JSON bodies are shown trimmed; empty bodies get the generic text
    """
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body

    if "model.request" in text:
        return MISSING_SCOPE_MESSAGE
    if status_code == 401:
        return AUTH_FAILED_MESSAGE

    message = _extract_message(text) if text.strip() else ""
    if not message:
        return GENERIC_SERVICE_MESSAGE
    return f"{GENERIC_SERVICE_MESSAGE}: {message}"


__all__ = ["AUTH_FAILED_MESSAGE", "GENERIC_SERVICE_MESSAGE", "describe_service_error"]
