import io
import math

import pytest
from PIL import Image

from conftest import FakeCodec, make_image_bytes
from integrations.raster import PillowRasterCodec
from processing import KIB, MIB
from processing.assets import Asset
from processing.config import get_image_config
from processing.errors import DecodeError
from processing.image import compress_image, compute_target_bytes, scaled_dimensions


def _asset(size: int, mime: str = "image/jpeg") -> Asset:
    return Asset(data=b"\x00" * size, mime_type=mime, name="photo.jpg")


def test_target_keeps_margin_below_input():
    assert compute_target_bytes(10 * MIB, 0.55) == min(round(5.5 * MIB), 10 * MIB - 20 * KIB)
    assert compute_target_bytes(100 * KIB, 0.9) == 80 * KIB


@pytest.mark.parametrize("size", [0, 1, 10 * KIB, 20 * KIB])
def test_target_clamped_to_one_byte(size):
    assert compute_target_bytes(size, 0.8) == 1


def test_scaled_dimensions():
    assert scaled_dimensions(4000, 3000, 1280) == (1280, 960)
    assert scaled_dimensions(1000, 333, 720) == (720, 240)
    assert scaled_dimensions(640, 480, 720) == (640, 480)
    assert scaled_dimensions(4000, 3000, None) == (4000, 3000)


def test_ten_mib_small_preset_converges_downward():
    codec = FakeCodec(4000, 3000, lambda w, h, q: round(q * 8_000_000))
    asset = _asset(10 * MIB)

    output = compress_image(asset, get_image_config("small", "image/jpeg"), codec)

    assert codec.qualities == [0.78, 0.73, 0.68]
    assert codec.resize_calls == [(1280, 960)]
    assert codec.decode_calls == 1
    assert output.size == 5_440_000
    assert output.size < asset.size
    assert output.mime_type == "image/jpeg"


def test_descent_stops_at_quality_floor():
    asset = _asset(10 * MIB)
    codec = FakeCodec(1000, 800, lambda w, h, q: asset.size - 1)
    params = get_image_config("small")

    output = compress_image(asset, params, codec)

    assert codec.qualities == [0.78, 0.73, 0.68, 0.63, 0.58, 0.53, 0.50]
    assert len(codec.attempts) <= math.ceil((params.quality_start - params.quality_min) / 0.05) + 1
    assert output.size == asset.size - 1


@pytest.mark.parametrize("preset", ["same", "small", "smallest"])
@pytest.mark.parametrize("mime", ["image/jpeg", "image/heic"])
def test_encode_count_bounded(preset, mime):
    asset = _asset(2 * MIB)
    codec = FakeCodec(3000, 2000, lambda w, h, q: asset.size * 2)
    params = get_image_config(preset, mime)

    compress_image(asset, params, codec)

    loop_bound = math.ceil((params.quality_start - params.quality_min) / 0.05) + 1
    # plus the single corrective pass
    assert len(codec.attempts) <= loop_bound + 1
    assert min(codec.qualities) >= params.quality_min


def test_corrective_pass_shrinks_uncapped_raster():
    asset = _asset(500 * KIB)
    codec = FakeCodec(800, 600, lambda w, h, q: asset.size if w == 800 else asset.size - 1000)

    output = compress_image(asset, get_image_config("same"), codec)

    assert codec.qualities == [0.85, 0.80, 0.75, 0.70, 0.65, 0.60, 0.60]
    assert codec.resize_calls == [(800, 600), (720, 540)]
    assert codec.attempts[-1] == (0.60, 720, 540, asset.size - 1000)
    assert output.size == asset.size - 1000


def test_corrective_pass_does_not_rescale_capped_raster():
    asset = _asset(500 * KIB)
    codec = FakeCodec(1000, 800, lambda w, h, q: asset.size + 5)

    output = compress_image(asset, get_image_config("smallest"), codec)

    assert codec.resize_calls == [(720, 576)]
    assert codec.attempts[-1][1:3] == (720, 576)
    assert codec.qualities[-1] == 0.40
    assert output is asset


def test_equal_size_counts_as_no_improvement():
    asset = _asset(300 * KIB)
    codec = FakeCodec(640, 480, lambda w, h, q: asset.size)

    assert compress_image(asset, get_image_config("small"), codec) is asset


def test_tiny_image_returns_original():
    asset = _asset(30 * KIB)
    codec = FakeCodec(64, 64, lambda w, h, q: 40 * KIB)

    output = compress_image(asset, get_image_config("same"), codec)

    assert output is asset


def test_decode_failure_propagates():
    codec = FakeCodec(10, 10, lambda w, h, q: 1)
    asset = Asset(data=b"BAD bytes", mime_type="image/jpeg")

    with pytest.raises(DecodeError):
        compress_image(asset, get_image_config("small"), codec)
    assert codec.attempts == []


# Real Pillow round trips


def test_pillow_noise_photo_is_resized_and_smaller():
    data = make_image_bytes(1600, 1200, quality=95)
    asset = Asset(data=data, mime_type="image/jpeg", name="noise.jpg")

    output = compress_image(asset, get_image_config("small", asset.mime_type), PillowRasterCodec())

    assert output.size < asset.size
    assert output.mime_type == "image/jpeg"
    with Image.open(io.BytesIO(output.data)) as image:
        assert image.format == "JPEG"
        assert image.size == (1280, 960)


def test_pillow_tiny_png_keeps_original():
    data = make_image_bytes(8, 8, fmt="PNG", noise=False)
    asset = Asset(data=data, mime_type="image/png", name="dot.png")

    output = compress_image(asset, get_image_config("same", asset.mime_type), PillowRasterCodec())

    assert output is asset


def test_pillow_rejects_garbage():
    asset = Asset(data=b"definitely not an image", mime_type="image/jpeg")

    with pytest.raises(DecodeError):
        compress_image(asset, get_image_config("small"), PillowRasterCodec())


def test_pillow_flattens_alpha():
    image = Image.new("RGBA", (4, 4), (255, 0, 0, 0))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")

    raster = PillowRasterCodec().decode(buffer.getvalue())

    assert raster.pixels.mode == "RGB"
    assert raster.pixels.getpixel((0, 0)) == (0, 0, 0)
    assert (raster.width, raster.height) == (4, 4)


def test_pillow_metadata_failure_is_decode_error(monkeypatch):
    from integrations import raster as raster_module

    def broken_transpose(image):
        raise TypeError("malformed orientation tag")

    monkeypatch.setattr(raster_module.ImageOps, "exif_transpose", broken_transpose)

    with pytest.raises(DecodeError, match="malformed orientation"):
        PillowRasterCodec().decode(make_image_bytes(8, 8))
