import logging
import math
import time
from typing import Dict, List, Optional

from processing.assets import Asset, ProgressCallback, emit_progress
from processing.config import VideoParams
from processing.errors import EmptyOutputError

OUTPUT_NAME = "output.mp4"
OUTPUT_MIME = "video/mp4"
DEFAULT_INPUT_EXTENSION = "mp4"


def _input_name(asset: Asset) -> str:
    return f"input.{asset.extension or DEFAULT_INPUT_EXTENSION}"


def _build_ffmpeg_args(input_name: str, output_name: str, params: VideoParams) -> List[str]:
    """Build the encoder argument list for a preset-driven H.264 MP4 encode.

    Args:
        input_name: Staged input entry name
        output_name: Output entry name
        params: Resolved video parameters

    Returns:
        FFmpeg arguments (without the binary) as list of strings
    """
    args: List[str] = [
        "-i", input_name,
        "-pix_fmt", params.pix_fmt,
        "-c:v", params.video_codec,
        "-crf", str(params.crf),
        "-preset", params.encoder_preset,
    ]

    if params.max_width:
        # Cap width, keep aspect ratio with an even height (H.264 requirement)
        args.extend(["-vf", f"scale='min({params.max_width},iw)':-2"])

    args.extend([
        "-movflags", params.movflags,
        "-c:a", params.audio_codec,
        "-b:a", params.audio_bitrate,
        output_name,
    ])
    return args


class _ProgressObserver:
    """Translates encoder ratios into monotone percents capped at 99."""

    def __init__(self, on_progress: Optional[ProgressCallback]):
        self.on_progress = on_progress
        self.last_percent = -1

    def __call__(self, event: Dict[str, float]) -> None:
        ratio = event.get("ratio") or 0
        percent = min(99, max(0, math.floor(ratio * 100)))
        if percent <= self.last_percent:
            return
        self.last_percent = percent
        emit_progress(self.on_progress, percent, f"Compressing… {percent}%")


def compress_video(
    asset: Asset,
    params: VideoParams,
    on_progress: Optional[ProgressCallback] = None,
    session=None,
) -> Asset:
    """Transcode a video once with the preset's CRF and scale.

    Staged input and output entries are removed on every exit path. There is
    no size targeting: the encoder output is returned as-is.

    Raises:
        EncoderUnavailableError: If the encoder cannot be initialized
        TranscodeError: If the encoder run fails
        EmptyOutputError: If the encoder produced zero bytes
    """
    if session is None:
        from integrations.encoder import get_default_session

        session = get_default_session()

    logging.info("=== VIDEO PROCESSING STARTED for %s ===", asset.name or "<unnamed>")
    logging.info("Using CRF %s, max width %s, preset %s", params.crf, params.max_width, params.encoder_preset)
    start_time = time.time()

    input_name = _input_name(asset)
    output_name = OUTPUT_NAME

    with session.exclusive() as encoder:
        try:
            encoder.stage_file(input_name, asset.data)
            logging.info("Staged %s (%d bytes)", input_name, asset.size)

            encoder.set_progress(_ProgressObserver(on_progress))
            encoder.run(_build_ffmpeg_args(input_name, output_name, params))
            data = encoder.read_file(output_name)
        finally:
            encoder.set_progress(None)
            for name in (input_name, output_name):
                try:
                    encoder.remove_file(name)
                except Exception as cleanup_exc:
                    logging.warning("Failed to remove staged entry %s: %s", name, str(cleanup_exc))

    if not data:
        raise EmptyOutputError("Encoding produced an empty file.")

    logging.info(
        "=== VIDEO PROCESSING COMPLETED: %d -> %d bytes in %.2fs ===",
        asset.size, len(data), time.time() - start_time,
    )
    return Asset(data=bytes(data), mime_type=OUTPUT_MIME, name=asset.name)
