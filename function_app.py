import json
import logging
import time
from typing import Optional, Tuple

import azure.functions as func

from integrations.auth import require_auth
from integrations.errors import bad_request, error_response
from processing.assets import Asset, ProgressSignal, make_output_name
from processing.config import Preset, get_max_upload_bytes
from processing.estimate import estimate_output_bytes, format_bytes
from processing.runs import start_image_run, start_video_run


app = func.FunctionApp()

START_TIME = time.time()

VIDEO_EXTENSIONS = ["mp4", "mov", "avi", "webm", "mkv", "m4v"]
IMAGE_EXTENSIONS = ["jpg", "jpeg", "png", "gif", "bmp", "webp", "heic", "heif"]

EXPOSED_HEADERS = "X-Original-Size, X-Compressed-Size, X-Saved-Percent"

DEFAULT_UPLOAD_NAMES = {"video": "upload.mp4", "image": "upload.jpg"}


def _media_kind(filename: str, mime_type: str) -> Optional[str]:
    extension = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
    if extension in VIDEO_EXTENSIONS:
        return "video"
    if extension in IMAGE_EXTENSIONS:
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("image/"):
        return "image"
    return None


def _read_upload(req: func.HttpRequest) -> Tuple[str, str, bytes]:
    """Return (filename, mime type, bytes) from a multipart or raw-body upload."""
    content_type = req.headers.get("Content-Type", "")
    if content_type.startswith("multipart/form-data"):
        files = req.files
        if not files or "file" not in files:
            return "", "", b""
        file_data = files["file"]
        return file_data.filename or "", file_data.content_type or "", file_data.stream.read()

    filename = req.headers.get("X-Filename") or req.params.get("filename") or ""
    return filename, content_type, req.get_body() or b""


def _log_progress(signal: ProgressSignal) -> None:
    logging.info("Progress %d%% (%s)", signal.percent, signal.phase)


@app.route(route="health", auth_level=func.AuthLevel.ANONYMOUS)
def health(req: func.HttpRequest) -> func.HttpResponse:  # type: ignore[override]
    """Health endpoint for deployment checks."""
    body = {
        "status": "ok",
        "host_uptime_seconds": int(time.time() - START_TIME),
        "presets": [preset.value for preset in Preset],
        "endpoints": [
            "GET /api/health",
            "GET /api/estimate",
            "POST /api/upload",
        ],
    }
    return func.HttpResponse(
        body=json.dumps(body),
        mimetype="application/json",
        status_code=200,
    )


@app.route(route="estimate", auth_level=func.AuthLevel.ANONYMOUS, methods=["GET"])
def estimate(req: func.HttpRequest) -> func.HttpResponse:  # type: ignore[override]
    """Display estimate of the compressed size.

    Query parameters:
        size: Input size in bytes
        preset: same, small or smallest (default small)
    """
    raw_size = req.params.get("size")
    if not raw_size:
        return bad_request("size parameter is required")
    try:
        size = int(raw_size)
    except ValueError:
        return bad_request(f"size must be an integer, got {raw_size!r}")
    if size < 0:
        return bad_request("size must not be negative")

    preset = Preset.parse(req.params.get("preset"))
    estimated = estimate_output_bytes(size, preset)

    return func.HttpResponse(
        body=json.dumps({
            "preset": preset.value,
            "estimated_bytes": estimated,
            "display": "≈ " + format_bytes(estimated),
        }),
        mimetype="application/json",
        status_code=200,
    )


@app.route(route="upload", auth_level=func.AuthLevel.ANONYMOUS, methods=["POST", "OPTIONS"])
async def upload_and_compress(req: func.HttpRequest) -> func.HttpResponse:  # type: ignore[override]
    """Accept a file upload, compress it, and return the compressed bytes.

    POST /api/upload?preset=small
    Body: multipart/form-data with a 'file' field, or the raw file with an
          X-Filename header

    Returns: Compressed file as binary body, sizes in X-* headers
    """
    if req.method == "OPTIONS":
        return func.HttpResponse(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Methods": "POST, OPTIONS",
                "Access-Control-Allow-Headers": "Content-Type, X-Filename, X-Api-Key",
                "Access-Control-Expose-Headers": EXPOSED_HEADERS,
            },
        )

    auth_response = require_auth(req)
    if auth_response:
        return auth_response

    filename, mime_type, data = _read_upload(req)
    if not data:
        return bad_request("No file provided. Use 'file' field in multipart form data or a raw body.")

    max_size = get_max_upload_bytes()
    if len(data) > max_size:
        return bad_request(f"File too large. Maximum size is {format_bytes(max_size)}.")

    kind = _media_kind(filename, mime_type)
    if kind is None:
        return bad_request(f"Unsupported file type: {filename or mime_type or 'unknown'}")

    preset = Preset.parse(req.params.get("preset"))
    asset = Asset(data=data, mime_type=mime_type or "application/octet-stream", name=filename or DEFAULT_UPLOAD_NAMES[kind])

    logging.info("=== UPLOAD AND COMPRESS STARTED ===")
    logging.info("File: %s (%s bytes), kind=%s, preset=%s", asset.name, asset.size, kind, preset.value)

    try:
        if kind == "video":
            result = await start_video_run(asset, preset, on_progress=_log_progress)
        else:
            result = await start_image_run(asset, preset)
    except Exception as exc:
        return error_response(exc)

    logging.info("=== UPLOAD AND COMPRESS COMPLETED: %s ===", result.as_dict())

    # An unchanged original keeps its own name and type
    output_name = asset.name if result.output is asset else make_output_name(asset.name, kind)

    return func.HttpResponse(
        body=result.output.data,
        mimetype=result.output.mime_type,
        status_code=200,
        headers={
            "Content-Disposition": f'attachment; filename="{output_name}"',
            "X-Original-Size": str(result.original_size),
            "X-Compressed-Size": str(result.output_size),
            "X-Saved-Percent": str(result.saved_percent),
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Expose-Headers": EXPOSED_HEADERS,
        },
    )
