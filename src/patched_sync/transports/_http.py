"""Response decoding shared by the HTTP transports."""

import json
from typing import Any

from ..codec import PatchDocument, validate_patch
from ..exceptions import TransportError

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


def decode_response(method: str, url: str, status_code: int, text: str) -> Any:
    """
    Decode a JSON response body.

    Returns:
        The decoded body, or None for an empty successful response

    Raises:
        TransportError: On status >= 400 or a body that is not JSON
    """
    if status_code >= 400:
        try:
            body: Any = json.loads(text) if text else None
        except ValueError:
            body = text
        raise TransportError(f"{method} {url} failed with status {status_code}", status_code=status_code, body=body)

    if not text or not text.strip():
        return None

    try:
        return json.loads(text)
    except ValueError as e:
        raise TransportError(
            f"{method} {url} returned a textual response, not JSON",
            status_code=status_code,
            body=text
        ) from e


def expect_object(method: str, url: str, body: Any) -> Any:
    """The GET payload is the full remote object; an empty body is an error."""
    if body is None:
        raise TransportError(f"{method} {url} returned an empty body")
    return body


def expect_patch(method: str, url: str, body: Any) -> PatchDocument:
    """The PATCH payload is a counter-patch; an empty body means no counter-edits."""
    if body is None:
        return []
    try:
        return validate_patch(body)
    except ValueError as e:
        raise TransportError(f"{method} {url} returned an invalid patch document: {e}", body=body) from e
