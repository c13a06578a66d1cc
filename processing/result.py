"""Packaging of a finished run into a CompressionResult."""

import logging
from dataclasses import dataclass

from processing import round_half_up
from processing.assets import Asset


@dataclass(frozen=True)
class CompressionResult:
    output: Asset
    original_size: int
    output_size: int
    saved_bytes: int
    saved_percent: int

    def as_dict(self) -> dict:
        return {
            "status": "success",
            "original_size": self.original_size,
            "compressed_size": self.output_size,
            "saved_bytes": self.saved_bytes,
            "saved_percent": self.saved_percent,
            "mime_type": self.output.mime_type,
        }


def finalize(original: Asset, output: Asset) -> CompressionResult:
    """Build the result of a run, never reporting an output larger than the input."""
    if output.size > original.size:
        logging.warning(
            "Output (%d bytes) larger than original (%d bytes) - returning original",
            output.size, original.size,
        )
        output = original

    original_size = original.size
    output_size = output.size
    saved_bytes = max(0, original_size - output_size)
    saved_percent = round_half_up(saved_bytes / original_size * 100) if original_size > 0 else 0

    return CompressionResult(
        output=output,
        original_size=original_size,
        output_size=output_size,
        saved_bytes=saved_bytes,
        saved_percent=saved_percent,
    )
