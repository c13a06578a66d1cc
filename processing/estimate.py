"""Display-only output size estimate."""

import math
from typing import Optional, Union

from config.compression_config import ESTIMATE_RATIOS
from processing import MIB, round_half_up
from processing.config import Preset

# Estimates never drop below this, even for tiny inputs.
MIN_ESTIMATE_BYTES = math.ceil(0.9 * MIB)


def estimate_output_bytes(input_bytes: int, preset: Union[Preset, str, None]) -> int:
    """Approximate the compressed size shown to the user before a run.

    The compression paths never consult this value.
    """
    ratio = ESTIMATE_RATIOS[Preset.parse(preset).value]
    return max(MIN_ESTIMATE_BYTES, round_half_up(max(0, input_bytes) * ratio))


def format_bytes(num_bytes: Optional[float]) -> str:
    """Format a byte count as KB below one MiB and MB above it."""
    if num_bytes is None:
        return "—"
    if num_bytes < MIB:
        return f"{max(1, round_half_up(num_bytes / 1024))} KB"
    value = num_bytes / MIB
    return f"{value:.0f} MB" if value >= 100 else f"{value:.1f} MB"
