"""
Error detection for proxy responses.

The upstream provider can answer ``200 text/event-stream`` and still deliver
one bare JSON error object instead of any SSE frames. These helpers tell such
a body apart from stream content, and pull the most specific message out of
error bodies.
"""
import json
from typing import Any

from promptiq.core.config import DEFAULT_SNIFF_LIMIT

GENERIC_ERROR_MESSAGE = (
    "Failed to generate response, please try again. "
    "If it keeps failing, switch to a different model."
)


def sniff_error_chunk(chunk: bytes, limit: int = DEFAULT_SNIFF_LIMIT) -> str | None:
    """
    Inspect a raw chunk for an embedded JSON error object.

    Only chunks that, once trimmed, start with ``{`` and are shorter than
    ``limit`` bytes are parsed. The chunk itself is never modified.

    Returns:
        The extracted error message, or None when the chunk should go on to
        the SSE parser.
    """
    trimmed = chunk.strip()
    if not trimmed.startswith(b"{") or len(trimmed) >= limit:
        return None

    try:
        payload = json.loads(trimmed)
    except ValueError:
        return None

    return error_message_from_payload(payload)


def error_message_from_payload(payload: Any) -> str | None:
    """
    Extract a message from a decoded error body.

    Recognizes ``{"error": {"message": ...}}``, ``{"error": "..."}`` and
    ``{"message": ...}``. An ``error`` member with no usable message yields
    the payload re-serialized as text.
    """
    if not isinstance(payload, dict):
        return None

    if "error" in payload and payload["error"]:
        error = payload["error"]
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
        elif isinstance(error, str):
            return error
        message = payload.get("message")
        if isinstance(message, str) and message:
            return message
        return json.dumps(payload)

    message = payload.get("message")
    if isinstance(message, str) and message:
        return message

    return None


def extract_http_error_message(body: str) -> str:
    """
    Message for a non-2xx response body.

    Prefers a message found in a JSON body, then the raw text, then a
    generic message.
    """
    text = body.strip()
    if text:
        try:
            payload = json.loads(text)
        except ValueError:
            return text
        message = error_message_from_payload(payload)
        if message:
            return message
        if isinstance(payload, dict) and isinstance(payload.get("detail"), str):
            return payload["detail"]
        return text
    return GENERIC_ERROR_MESSAGE
