import json
import logging

import azure.functions as func

from processing.errors import (
    CompressionError,
    DecodeError,
    EncoderUnavailableError,
)


def status_for_error(exc: Exception) -> int:
    if isinstance(exc, DecodeError):
        return 422
    if isinstance(exc, EncoderUnavailableError):
        return 503
    return 500


def error_response(exc: Exception) -> func.HttpResponse:
    """Surface a failed run to the caller with its message unchanged."""
    status_code = status_for_error(exc)
    if isinstance(exc, CompressionError):
        logging.error("Compression failed (%s): %s", type(exc).__name__, str(exc))
    else:
        logging.exception("Unexpected failure: %s", str(exc))

    return func.HttpResponse(
        body=json.dumps({"status": "error", "error": str(exc)}),
        mimetype="application/json",
        status_code=status_code,
    )


def bad_request(message: str) -> func.HttpResponse:
    return func.HttpResponse(
        body=json.dumps({"error": message}),
        mimetype="application/json",
        status_code=400,
    )
