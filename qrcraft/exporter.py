"""Resolution export: render at the exact target size and encode as PNG."""

import io
import math
import re

from PIL import Image

from qrcraft.config import RenderSettings
from qrcraft.errors import ExportError
from qrcraft.logging import audit, get_logger

log = get_logger("exporter")

PNG = "PNG"


def compute_margin(size_px: int, settings: RenderSettings | None = None) -> int:
    """Quiet zone in pixels: a constant share of the image at every size."""
    settings = settings or RenderSettings()
    return max(settings.min_margin_px, math.floor(size_px * settings.margin_ratio))


def validate_size(size_px, settings: RenderSettings | None = None) -> int:
    settings = settings or RenderSettings()
    if isinstance(size_px, bool) or not isinstance(size_px, int):
        raise ExportError(f"target size must be an integer, got {size_px!r}")
    if size_px <= 0:
        raise ExportError(f"target size must be positive, got {size_px}")
    if size_px > settings.max_size_px:
        raise ExportError(f"target size {size_px}px exceeds the {settings.max_size_px}px limit")
    return size_px


def encode_png(image: Image.Image) -> bytes:
    """Serialize to PNG with no metadata so equal pixels give equal bytes."""
    buf = io.BytesIO()
    try:
        image.save(buf, format=PNG, optimize=False)
    except (OSError, ValueError) as e:
        raise ExportError(f"PNG encoding failed: {e}") from e
    return buf.getvalue()


def export(render_fn, target_size_px: int, settings: RenderSettings | None = None) -> bytes:
    """Render at exactly *target_size_px* and return PNG bytes.

    *render_fn(size_px)* must return an image of that size; it is called at
    the requested resolution rather than upscaling a smaller render, so
    strokes, margins and the logo backing stay crisp.

    Raises:
        ExportError: Invalid size, wrong-sized render, or encoding failure.
    """
    size = validate_size(target_size_px, settings)
    image = render_fn(size)
    if image.size != (size, size):
        raise ExportError(f"render produced {image.size[0]}x{image.size[1]}, expected {size}x{size}")
    data = encode_png(image)
    audit("export.done", logger=log, size=size, png_bytes=len(data))
    return data


_UNSAFE = re.compile(r"[^\w.-]+")


def download_filename(label: str, size_px: int) -> str:
    """File name for a sized download, e.g. ``menu_512px.png``."""
    stem = _UNSAFE.sub("_", label.strip()).strip("._") or "qr"
    return f"{stem}_{size_px}px.png"
