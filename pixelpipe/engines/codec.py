"""Pillow-backed codec collaborator."""

import io

from PIL import Image

from pixelpipe.engines.base import IImageCodec

# Modes PNG can store without losing information
PNG_MODES = {"1", "L", "LA", "I", "P", "RGB", "RGBA"}


class PillowCodec(IImageCodec):

    def convert(self, data: bytes, target_format: str) -> bytes:
        target_format = target_format.upper()

        with Image.open(io.BytesIO(data)) as image:
            image.load()
            if target_format == "PNG" and image.mode not in PNG_MODES:
                # CMYK / YCbCr JPEGs
                converted = image.convert("RGB")
            else:
                converted = image

            output_buffer = io.BytesIO()
            converted.save(output_buffer, format=target_format)
            return output_buffer.getvalue()
