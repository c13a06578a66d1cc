"""Pillow-backed raster decode/encode used by the image path."""

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps
from pillow_heif import register_heif_opener

from processing import round_half_up
from processing.errors import DecodeError

register_heif_opener()


@dataclass(frozen=True)
class Raster:
    width: int
    height: int
    pixels: Image.Image


class PillowRasterCodec:
    """Decodes any Pillow-readable image and encodes baseline JPEG."""

    output_mime = "image/jpeg"

    def decode(self, data: bytes) -> Raster:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
            image = ImageOps.exif_transpose(image)

            # Transparent areas end up on an opaque black canvas
            if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
                rgba = image.convert("RGBA")
                canvas = Image.new("RGB", rgba.size, (0, 0, 0))
                canvas.paste(rgba, mask=rgba.getchannel("A"))
                image = canvas
            elif image.mode != "RGB":
                image = image.convert("RGB")
        except Exception as exc:
            raise DecodeError(f"Could not decode image: {exc}") from exc

        logging.debug("Decoded %dx%d raster", image.width, image.height)
        return Raster(image.width, image.height, image)

    def resize(self, raster: Raster, width: int, height: int) -> Raster:
        if (width, height) == (raster.width, raster.height):
            return raster
        resized = raster.pixels.resize((width, height), Image.Resampling.LANCZOS)
        return Raster(width, height, resized)

    def encode(self, raster: Raster, quality: float) -> bytes:
        output_buffer = io.BytesIO()
        raster.pixels.save(output_buffer, format="JPEG", quality=round_half_up(quality * 100))
        return output_buffer.getvalue()
