"""Deterministic image normalization ahead of hashing and OCR."""

from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image, ImageOps

from .ocr import decode_image


@dataclass(slots=True)
class NormalizedImage:
    png_bytes: bytes
    width: int
    height: int


class Preprocessor:
    """Re-encodes imported images into a canonical PNG byte stream.

    Orientation metadata is applied to the pixels, the image is converted to
    RGBA and written without ancillary chunks, so that two imports of the
    same logical image hash to the same screen id.
    """

    def __init__(self, compress_level: int = 6) -> None:
        self.compress_level = compress_level

    def run(self, data: bytes) -> NormalizedImage:
        image = decode_image(data)
        upright = ImageOps.exif_transpose(image)
        rgba = upright.convert("RGBA")
        canvas = Image.new("RGBA", rgba.size)
        canvas.paste(rgba)
        buffer = io.BytesIO()
        canvas.save(buffer, format="PNG", optimize=False, compress_level=self.compress_level)
        return NormalizedImage(png_bytes=buffer.getvalue(), width=canvas.width, height=canvas.height)
