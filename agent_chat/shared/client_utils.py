import base64
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx

GENERIC_ERROR_MESSAGE = "Request failed"

def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Every client calls this once in __init__.
    Keys: streams_opened, bytes_received, frames_received, frames_dropped,
          events_received, last_event_at, created_at.
    """
    return {
        "streams_opened": 0,
        "bytes_received": 0,
        "frames_received": 0,
        "frames_dropped": 0,
        "events_received": 0,
        "last_event_at": None,
        "created_at": datetime.now(timezone.utc).isoformat()
    }

def build_headers(authorization: str | None = None, extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """
    Headers sent with every request. Authorization is passed through verbatim.
    Caller headers are merged in, but never replace Content-Type.
    """
    headers: dict[str, str] = {}
    if authorization:
        headers["Authorization"] = authorization
    for key, value in (extra or {}).items():
        if key.lower() == "content-type":
            continue
        headers[key] = value
    headers["Content-Type"] = "application/json"
    return headers

def extract_error_message(response: httpx.Response) -> str:
    """
    Unwraps the agent server error body: `error.message`, then `message`,
    then a generic fallback. The response body must already be read.
    """
    try:
        body: Any = response.json()
    except ValueError:
        return GENERIC_ERROR_MESSAGE

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return GENERIC_ERROR_MESSAGE

def generate_id() -> str:
    """Millisecond timestamp plus a short random suffix, e.g. `1718000000000_k3j9x0a1q`."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{int(time.time() * 1000)}_{suffix}"

def encode_file_content(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
