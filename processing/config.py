"""Preset resolution into per-run encoding parameters."""

import enum
import os
import re
from dataclasses import dataclass, replace
from typing import Any, Optional, Union

from config.compression_config import (
    DEFAULT_PRESET,
    IMAGE_PRESETS,
    VIDEO_ENCODING_SETTINGS,
    VIDEO_PRESETS,
)


# Sources already encoded with a high-efficiency codec need a lower quality
# ceiling to reach the same size ratio.
HIGH_COMPRESSION_MIME = re.compile(r"image/hei(c|f)", re.IGNORECASE)


class Preset(str, enum.Enum):
    SAME = "same"
    SMALL = "small"
    SMALLEST = "smallest"

    @classmethod
    def parse(cls, value: Union["Preset", str, None]) -> "Preset":
        """Map any caller-supplied value to a preset; unknown values become SMALL."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls(DEFAULT_PRESET)


class AssetKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class ImageParams:
    max_dimension: Optional[int]
    target_ratio: float
    quality_start: float
    quality_min: float


@dataclass(frozen=True)
class VideoParams:
    crf: int
    max_width: Optional[int]
    encoder_preset: str = VIDEO_ENCODING_SETTINGS["encoder_preset"]
    video_codec: str = VIDEO_ENCODING_SETTINGS["video_codec"]
    pix_fmt: str = VIDEO_ENCODING_SETTINGS["pix_fmt"]
    movflags: str = VIDEO_ENCODING_SETTINGS["movflags"]
    audio_codec: str = VIDEO_ENCODING_SETTINGS["audio_codec"]
    audio_bitrate: str = VIDEO_ENCODING_SETTINGS["audio_bitrate"]


def is_high_compression_source(mime_hint: Optional[str]) -> bool:
    return bool(mime_hint and HIGH_COMPRESSION_MIME.search(mime_hint))


def get_image_config(preset: Union[Preset, str, None], mime_hint: Optional[str] = None) -> ImageParams:
    """Get image convergence parameters for a preset.

    Args:
        preset: Preset name (same, small, smallest); anything else resolves to small
        mime_hint: Declared media type of the source, used to detect HEIC/HEIF input

    Returns:
        Immutable ImageParams for one run
    """
    profile = IMAGE_PRESETS[Preset.parse(preset).value]
    normal_start, heavy_start = profile["quality_start"]

    return ImageParams(
        max_dimension=profile["max_dimension"],
        target_ratio=profile["target_ratio"],
        quality_start=heavy_start if is_high_compression_source(mime_hint) else normal_start,
        quality_min=profile["quality_min"],
    )


def get_video_config(preset: Union[Preset, str, None] = DEFAULT_PRESET, **overrides: Any) -> VideoParams:
    """Get video encoding parameters with optional overrides.

    Examples:
        # CRF 30, at most 720 px wide
        params = get_video_config("smallest")

        # Slower encode of the small preset
        params = get_video_config("small", encoder_preset="medium")
    """
    params = VideoParams(**VIDEO_PRESETS[Preset.parse(preset).value])
    if overrides:
        params = replace(params, **overrides)
    return params


def resolve(
    preset: Union[Preset, str, None],
    asset_kind: Union[AssetKind, str],
    mime_hint: Optional[str] = None,
) -> Union[ImageParams, VideoParams]:
    """Resolve a preset into the parameter bundle for the given asset kind."""
    if AssetKind(asset_kind) is AssetKind.VIDEO:
        return get_video_config(preset)
    return get_image_config(preset, mime_hint)


def get_max_processing_time() -> int:
    return int(os.getenv("MAX_PROCESSING_TIME", "300"))


def get_ffmpeg_binary() -> str:
    return os.getenv("FFMPEG_BINARY", "ffmpeg")


def get_max_upload_bytes() -> int:
    return int(os.getenv("MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))
