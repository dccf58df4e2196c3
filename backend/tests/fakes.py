"""Test doubles shared by the API tests."""

from __future__ import annotations

import struct
import zlib

from html2png.core.errors import RenderError
from html2png.services.renderer import RenderRequest

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def _chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)


def make_png(width: int, height: int) -> bytes:
    """A valid 8-bit grayscale PNG of the given pixel size (all white)."""
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 0, 0, 0, 0)
    row = b"\x00" + b"\xff" * width
    idat = zlib.compress(row * height)
    return PNG_SIGNATURE + _chunk(b"IHDR", ihdr) + _chunk(b"IDAT", idat) + _chunk(b"IEND", b"")


def png_size(data: bytes) -> tuple[int, int]:
    assert data[:8] == PNG_SIGNATURE
    assert data[12:16] == b"IHDR"
    return struct.unpack(">II", data[16:24])


class FakeRenderer:
    """Stands in for ``HtmlRenderer``; auto-sized output is ``content_height`` tall."""

    def __init__(self, content_height: int = 300, fail_with: RenderError | None = None):
        self.content_height = content_height
        self.fail_with = fail_with
        self.requests: list[RenderRequest] = []

    async def render(self, request: RenderRequest) -> bytes:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        height = request.height or self.content_height
        return make_png(request.width * request.dpr, height * request.dpr)
