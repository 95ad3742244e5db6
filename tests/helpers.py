"""Image and locator builders shared by the test modules."""

import io
from unittest.mock import AsyncMock, MagicMock

from PIL import Image


def png_bytes(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def solid(width: int, height: int, color=(255, 255, 255, 255)) -> Image.Image:
    return Image.new("RGBA", (width, height), color)


def with_block(image: Image.Image, x: int, y: int, w: int, h: int, color=(0, 0, 0, 255)) -> Image.Image:
    """Copy of ``image`` with a filled rectangle."""
    out = image.copy()
    out.paste(Image.new("RGBA", (w, h), color), (x, y))
    return out


def make_locator(count: int = 1, visible: bool = True, box: dict | None = None) -> MagicMock:
    """A Playwright locator double; ``nth`` is synchronous like the real API."""
    locator = MagicMock()
    locator.count = AsyncMock(return_value=count)
    locator.is_visible = AsyncMock(return_value=visible)
    locator.click = AsyncMock()
    locator.bounding_box = AsyncMock(return_value=box)
    locator.scroll_into_view_if_needed = AsyncMock()
    locator.screenshot = AsyncMock()
    locator.all = AsyncMock(return_value=[locator] * count)
    locator.nth = MagicMock(return_value=locator)
    return locator
