"""Image builders shared by the test modules."""

import io
import random
import struct
import zlib

from PIL import Image

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def encode_image(size, fmt="JPEG", color=(200, 40, 40), mode="RGB") -> bytes:
    """Render a solid image of `size` into bytes of the given format."""
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def image_size(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as image:
        return image.size


def _png_chunk(chunk_type: bytes, payload: bytes) -> bytes:
    body = chunk_type + payload
    return struct.pack(">I", len(payload)) + body + struct.pack(">I", zlib.crc32(body))


def png_with_broken_chunk(width=64, height=64) -> bytes:
    """
    A PNG whose pixel data is split over two chunks, the second with a mangled
    chunk type. The header parses; decoding stops with a "broken PNG file" error.
    """
    rng = random.Random(0)
    raw = b"".join(b"\x00" + rng.randbytes(width * 3) for _ in range(height))
    stream = zlib.compress(raw)
    half = len(stream) // 2
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        PNG_SIGNATURE
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", stream[:half])
        + _png_chunk(b"IDA\xb0", stream[half:])
        + _png_chunk(b"IEND", b"")
    )
