"""API key check for the HTTP endpoints."""

import hmac
import json
import logging
import os
from typing import List, Optional, Tuple

import azure.functions as func


def _configured_keys() -> List[str]:
    raw = os.environ.get("COMPRESSION_API_KEYS", "")
    return [key.strip() for key in raw.split(",") if key.strip()]


def validate_api_key(req: func.HttpRequest) -> Tuple[bool, Optional[str]]:
    """Validate the API key sent with a request.

    Keys come from COMPRESSION_API_KEYS (comma-separated). With no keys
    configured every request is accepted.

    Returns:
        Tuple of (is_valid, error_message)
    """
    valid_keys = _configured_keys()
    if not valid_keys:
        return True, None

    api_key = req.headers.get("X-Api-Key") or req.headers.get("Authorization")
    if api_key and api_key.startswith("Bearer "):
        api_key = api_key[len("Bearer "):]

    if not api_key:
        return False, "Missing API key. Provide X-Api-Key header or Authorization: Bearer <key>"

    if not any(hmac.compare_digest(api_key, key) for key in valid_keys):
        logging.warning("Invalid API key provided")
        return False, "Invalid API key"

    return True, None


def require_auth(req: func.HttpRequest) -> Optional[func.HttpResponse]:
    """Return a 401 response when the request is not authorized, else None."""
    is_valid, error_message = validate_api_key(req)
    if is_valid:
        return None

    return func.HttpResponse(
        body=json.dumps({"error": error_message}),
        mimetype="application/json",
        status_code=401,
    )
