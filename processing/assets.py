"""Value types passed between the caller and the compression engine."""

import os
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional


@dataclass(frozen=True)
class Asset:
    """An immutable media payload with its declared media type."""

    data: bytes
    mime_type: str
    name: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.name)[1].lstrip(".").lower()


class ProgressSignal(NamedTuple):
    percent: int
    phase: str


ProgressCallback = Callable[[ProgressSignal], None]


def emit_progress(on_progress: Optional[ProgressCallback], percent: int, phase: str) -> None:
    if on_progress is not None:
        on_progress(ProgressSignal(percent, phase))


def make_output_name(name: str, kind: str = "video", suffix: str = "-shrink") -> str:
    """Derive the download name for a compressed asset.

    Images always become JPEG and videos always become MP4, whatever the input.
    """
    stem = name.rsplit(".", 1)[0] if "." in name else name
    extension = ".jpg" if kind == "image" else ".mp4"
    return f"{stem}{suffix}{extension}"
