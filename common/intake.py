import base64
import binascii
import json
from typing import Any, Dict

from common.errors import JobValidationError


def decode_push_envelope(body: Any) -> Dict[str, Any]:
    """
    Unwraps a push notification of the form {"message": {"data": "<base64 JSON>"}}
    and returns the decoded JSON payload. The payload's `name` field is checked
    later, by the pipeline.
    """
    if not isinstance(body, dict):
        raise JobValidationError("request body must be a JSON object")

    message = body.get("message")
    if not isinstance(message, dict):
        raise JobValidationError("missing message")

    data = message.get("data")
    if not isinstance(data, str) or not data:
        raise JobValidationError("missing message data")

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise JobValidationError(f"message data is not valid base64: {e}") from e

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise JobValidationError(f"message data is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise JobValidationError("message payload must be a JSON object")
    return payload
