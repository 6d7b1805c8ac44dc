"""
Image normalization.

Turns an arbitrary source logo (PNG, JPEG, WebP, GIF or SVG) into square
transparent PNGs at the fixed logo sizes, and flattens cached PNGs onto a
solid background at request time.
"""

import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, FrozenSet, Tuple

from PIL import Image

from ticker_logos.storage.models import ALL_SIZES, LogoSize
from .errors import InvalidColor

log = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"[0-9a-fA-F]{6}")


@dataclass
class NormalizationResult:
    """Per-size outcome of normalizing one source image."""
    images: Dict[LogoSize, bytes] = field(default_factory=dict)
    errors: Dict[LogoSize, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> FrozenSet[LogoSize]:
        return frozenset(self.images)

    @property
    def ok(self) -> bool:
        """True when every size was produced."""
        return not self.errors

    def error_message(self) -> str:
        """Aggregate all per-size failures into one message."""
        return "; ".join(
            f"{size.value}: {self.errors[size]}" for size in ALL_SIZES if size in self.errors
        )


def normalize_all(source: bytes) -> NormalizationResult:
    """Resize a source image to every fixed logo size.

    Each size is decoded and resized on its own so a failure at one size
    does not stop the others.

    Args:
        source: Raw image bytes as downloaded from a provider

    Returns:
        NormalizationResult with PNG bytes for the sizes that succeeded and
        an error string for each size that failed
    """
    result = NormalizationResult()
    for size in ALL_SIZES:
        try:
            result.images[size] = resize_to_square_png(source, size.pixels)
        except Exception as e:
            log.debug("normalize.size_failed size=%s error=%s", size.value, e)
            result.errors[size] = f"resizing to {size.pixels}px: {e}"
    return result


def resize_to_square_png(source: bytes, pixels: int) -> bytes:
    """Fit an image inside a transparent square canvas and encode it as PNG.

    The aspect ratio is preserved, the image is never cropped and smaller
    sources are scaled up.
    """
    image = _open_image(source, pixels)
    image.load()
    if image.mode != "RGBA":
        image = image.convert("RGBA")

    width, height = image.size
    if width == 0 or height == 0:
        raise ValueError("source image has no pixels")

    scale = min(pixels / width, pixels / height)
    fitted = (max(1, round(width * scale)), max(1, round(height * scale)))
    if fitted != image.size:
        image = image.resize(fitted, Image.Resampling.LANCZOS)

    canvas = Image.new("RGBA", (pixels, pixels), (0, 0, 0, 0))
    offset = ((pixels - fitted[0]) // 2, (pixels - fitted[1]) // 2)
    canvas.paste(image, offset)

    out = BytesIO()
    canvas.save(out, "PNG", optimize=True)
    return out.getvalue()


def apply_background(png: bytes, hex_color: str) -> bytes:
    """Flatten any transparency onto an opaque background color.

    Args:
        png: PNG bytes, usually a cached transparent logo
        hex_color: Six hex digits, with or without a leading '#'

    Returns:
        PNG bytes without an alpha channel

    Raises:
        InvalidColor: If hex_color is not exactly six hex digits
    """
    rgb = parse_hex_color(hex_color)

    image = Image.open(BytesIO(png))
    image.load()
    if image.mode != "RGBA":
        image = image.convert("RGBA")

    background = Image.new("RGBA", image.size, rgb + (255,))
    flattened = Image.alpha_composite(background, image).convert("RGB")

    out = BytesIO()
    flattened.save(out, "PNG", optimize=True)
    return out.getvalue()


def parse_hex_color(hex_color: str) -> Tuple[int, int, int]:
    """Parse ``"rrggbb"`` or ``"#rrggbb"`` into an RGB tuple."""
    value = hex_color or ""
    if value.startswith("#"):
        value = value[1:]
    if not _HEX_COLOR.fullmatch(value):
        raise InvalidColor(f"invalid hex color: {hex_color!r} (expected 6 hex digits)")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def is_svg(data: bytes) -> bool:
    """Sniff whether raw bytes hold an SVG document."""
    head = data[:1024].lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    if head.startswith(b"<svg"):
        return True
    return head.startswith((b"<?xml", b"<!doctype svg", b"<!--")) and b"<svg" in head


def _open_image(source: bytes, pixels: int) -> Image.Image:
    if is_svg(source):
        return Image.open(BytesIO(_render_svg(source, pixels)))
    return Image.open(BytesIO(source))


def _render_svg(source: bytes, pixels: int) -> bytes:
    # imported lazily: cairosvg loads the native cairo library at import time
    import cairosvg

    return cairosvg.svg2png(bytestring=source, output_width=pixels)
