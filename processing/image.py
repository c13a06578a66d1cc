import logging
import time
from typing import Optional, Tuple

from processing import KIB, round_half_up
from processing.assets import Asset
from processing.config import ImageParams

QUALITY_STEP = 0.05
CORRECTIVE_QUALITY_STEP = 0.10
CORRECTIVE_SCALE = 0.9
# The target always sits at least this far below the input size.
TARGET_MARGIN_BYTES = 20 * KIB


def compute_target_bytes(input_bytes: int, target_ratio: float) -> int:
    """Byte budget for the convergence loop, never below one byte."""
    target = min(round_half_up(input_bytes * target_ratio), input_bytes - TARGET_MARGIN_BYTES)
    return max(1, target)


def scaled_dimensions(width: int, height: int, max_dimension: Optional[int]) -> Tuple[int, int]:
    """Cap the width at max_dimension, keeping the aspect ratio."""
    if max_dimension and width > max_dimension:
        scale = max_dimension / width
        return max_dimension, max(1, round_half_up(height * scale))
    return width, height


def _lower_quality(quality: float, step: float, floor: float) -> float:
    return max(floor, round(quality - step, 2))


def compress_image(asset: Asset, params: ImageParams, codec=None) -> Asset:
    """Converge a JPEG re-encode of the asset towards the preset's byte budget.

    Quality descends linearly from params.quality_start to params.quality_min in
    steps of 0.05, re-encoding the already rendered raster each time. If the best
    attempt is still not smaller than the input one corrective pass shrinks the
    raster (when it was not already capped) and lowers quality by 0.10.

    Args:
        asset: Source image, never modified
        params: Resolved image parameters
        codec: Raster collaborator (default: PillowRasterCodec)

    Returns:
        The compressed JPEG asset, or the original asset itself when no attempt
        came out smaller

    Raises:
        DecodeError: If the source cannot be decoded
    """
    if codec is None:
        from integrations.raster import PillowRasterCodec

        codec = PillowRasterCodec()

    start_time = time.time()
    original_size = asset.size

    source = codec.decode(asset.data)
    width, height = scaled_dimensions(source.width, source.height, params.max_dimension)
    capped = (width, height) != (source.width, source.height)

    target = compute_target_bytes(original_size, params.target_ratio)
    logging.info(
        "Image %dx%d (%d bytes) -> %dx%d, target %d bytes",
        source.width, source.height, original_size, width, height, target,
    )

    raster = codec.resize(source, width, height)

    quality = params.quality_start
    encoded = codec.encode(raster, quality)
    logging.debug("Attempt q=%.2f %dx%d: %d bytes", quality, width, height, len(encoded))

    while len(encoded) > target and quality > params.quality_min:
        quality = _lower_quality(quality, QUALITY_STEP, params.quality_min)
        encoded = codec.encode(raster, quality)
        logging.debug("Attempt q=%.2f %dx%d: %d bytes", quality, width, height, len(encoded))

    if len(encoded) >= original_size:
        if not capped:
            width = round_half_up(width * CORRECTIVE_SCALE)
            height = round_half_up(height * CORRECTIVE_SCALE)
            raster = codec.resize(source, max(1, width), max(1, height))
        quality = _lower_quality(quality, CORRECTIVE_QUALITY_STEP, params.quality_min)
        encoded = codec.encode(raster, quality)
        logging.info(
            "Corrective pass q=%.2f %dx%d: %d bytes", quality, raster.width, raster.height, len(encoded)
        )

    if len(encoded) >= original_size:
        logging.info(
            "No attempt beat the original (%d >= %d bytes) - keeping original", len(encoded), original_size
        )
        return asset

    logging.info(
        "Image compressed %d -> %d bytes at q=%.2f in %.2fs",
        original_size, len(encoded), quality, time.time() - start_time,
    )
    return Asset(data=encoded, mime_type=codec.output_mime, name=asset.name)
