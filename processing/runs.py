"""Asynchronous entry points for callers (HTTP adapter, UI glue)."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from processing import round_half_up
from processing.assets import Asset, ProgressCallback, emit_progress, make_output_name
from processing.config import AssetKind, Preset, resolve
from processing.image import compress_image
from processing.result import CompressionResult, finalize
from processing.video import compress_video

BULK_SUFFIX = "-vs"


@dataclass(frozen=True)
class BulkItem:
    name: str
    result: CompressionResult


async def start_image_run(
    asset: Asset,
    preset,
    on_progress: Optional[ProgressCallback] = None,
    codec=None,
) -> CompressionResult:
    params = resolve(preset, AssetKind.IMAGE, asset.mime_type)
    emit_progress(on_progress, 0, "Preparing…")

    output = await asyncio.to_thread(compress_image, asset, params, codec)
    result = finalize(asset, output)

    emit_progress(on_progress, 100, "Done!")
    return result


async def start_video_run(
    asset: Asset,
    preset,
    on_progress: Optional[ProgressCallback] = None,
    session=None,
) -> CompressionResult:
    params = resolve(preset, AssetKind.VIDEO, asset.mime_type)
    emit_progress(on_progress, 0, "Preparing…")

    output = await asyncio.to_thread(compress_video, asset, params, on_progress, session)
    result = finalize(asset, output)

    emit_progress(on_progress, 100, "Done!")
    return result


def dedupe_assets(assets: Iterable[Asset]) -> List[Asset]:
    """Drop repeated inputs, keyed by name and size, keeping the first one."""
    seen = {}
    for asset in assets:
        seen.setdefault((asset.name, asset.size), asset)
    return list(seen.values())


async def start_bulk_image_run(
    assets: Iterable[Asset],
    preset,
    on_progress: Optional[ProgressCallback] = None,
    codec=None,
) -> List[BulkItem]:
    """Compress several images one after another with the same preset."""
    preset = Preset.parse(preset)
    pending = dedupe_assets(assets)
    total = len(pending)
    items: List[BulkItem] = []

    emit_progress(on_progress, 0, "Preparing…")
    for index, asset in enumerate(pending):
        logging.info("Processing %d of %d: %s", index + 1, total, asset.name)
        result = await start_image_run(asset, preset, codec=codec)
        items.append(BulkItem(make_output_name(asset.name, "image", BULK_SUFFIX), result))
        emit_progress(
            on_progress,
            round_percent(index + 1, total),
            f"Compressing {index + 1} of {total}: {asset.name}",
        )

    emit_progress(on_progress, 100, "Compression complete")
    return items


def round_percent(done: int, total: int) -> int:
    return round_half_up(done / total * 100) if total else 100
