import io
import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import pytest
from PIL import Image

from integrations.encoder import EncoderSession
from processing.errors import DecodeError


@dataclass(frozen=True)
class FakeRaster:
    width: int
    height: int
    pixels: object = None


class FakeCodec:
    """Raster codec whose encoded size is a function of dimensions and quality."""

    output_mime = "image/jpeg"

    def __init__(self, width: int, height: int, size_fn: Callable[[int, int, float], int]):
        self.width = width
        self.height = height
        self.size_fn = size_fn
        self.decode_calls = 0
        self.resize_calls: List[tuple] = []
        self.attempts: List[tuple] = []

    def decode(self, data: bytes) -> FakeRaster:
        self.decode_calls += 1
        if data.startswith(b"BAD"):
            raise DecodeError("Could not decode image: corrupt")
        return FakeRaster(self.width, self.height)

    def resize(self, raster: FakeRaster, width: int, height: int) -> FakeRaster:
        self.resize_calls.append((width, height))
        return FakeRaster(width, height)

    def encode(self, raster: FakeRaster, quality: float) -> bytes:
        size = self.size_fn(raster.width, raster.height, quality)
        self.attempts.append((quality, raster.width, raster.height, size))
        return b"\xff" * size

    @property
    def qualities(self) -> List[float]:
        return [attempt[0] for attempt in self.attempts]


class FakeEncoder:
    """In-memory stand-in for the ffmpeg collaborator."""

    def __init__(
        self,
        output: bytes = b"encoded-video",
        ratios: Optional[List[float]] = None,
        run_error: Optional[Exception] = None,
        remove_error: Optional[Exception] = None,
        init_error: Optional[Exception] = None,
        init_delay: float = 0.0,
    ):
        self.output = output
        self.ratios = ratios or []
        self.run_error = run_error
        self.remove_error = remove_error
        self.init_error = init_error
        self.init_delay = init_delay
        self.files: Dict[str, bytes] = {}
        self.init_count = 0
        self.runs: List[List[str]] = []
        self.hook = None

    def initialize(self, config=None) -> None:
        self.init_count += 1
        time.sleep(self.init_delay)
        if self.init_error is not None:
            raise self.init_error

    def stage_file(self, name: str, data: bytes) -> None:
        self.files[name] = data

    def read_file(self, name: str) -> bytes:
        return self.files[name]

    def remove_file(self, name: str) -> None:
        if self.remove_error is not None:
            raise self.remove_error
        del self.files[name]

    def set_progress(self, hook) -> None:
        self.hook = hook

    def run(self, argv: List[str]) -> None:
        self.runs.append(list(argv))
        for ratio in self.ratios:
            self.hook({"ratio": ratio})
        if self.run_error is not None:
            raise self.run_error
        self.files[argv[-1]] = self.output


@pytest.fixture
def fake_encoder():
    return FakeEncoder()


@pytest.fixture
def session(fake_encoder):
    return EncoderSession(factory=lambda: fake_encoder)


def make_image_bytes(width: int, height: int, fmt: str = "JPEG", noise: bool = True, **save_kwargs) -> bytes:
    if noise:
        image = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    else:
        image = Image.new("RGB", (width, height), (200, 30, 30))
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()
