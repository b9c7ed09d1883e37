"""Logo compositing: centered logo box, rounded contrast backing, paste."""

from dataclasses import dataclass

from PIL import Image, ImageDraw

from qrcraft.logging import audit, get_logger, trace
from qrcraft.matrix import ECC_RECOVERY, FINDER, BitMatrix
from qrcraft.style import LOGO_PERCENT_MAX, LOGO_PERCENT_MIN, LogoAspect, StyleConfig, clamp

log = get_logger("compositor")

DEFAULT_PADDING_PX = 6


@dataclass(frozen=True)
class LogoBox:
    """Where the logo goes, in output pixels."""

    x: int
    y: int
    w: int
    h: int

    def backing(self, padding: int = DEFAULT_PADDING_PX) -> tuple[int, int, int, int]:
        """(x, y, w, h) of the backing rectangle around the logo."""
        return (self.x - padding, self.y - padding, self.w + 2 * padding, self.h + 2 * padding)

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.w, self.h)


def box_dimensions(logo_max: int, aspect: LogoAspect) -> tuple[int, int]:
    """Width and height of the logo box for a given longest side."""
    if aspect is LogoAspect.WIDE:
        return logo_max, logo_max * 9 // 16
    if aspect is LogoAspect.PORTRAIT:
        return logo_max * 3 // 4, logo_max
    return logo_max, logo_max


def compute_logo_box(size_px: int, percent: int, aspect: LogoAspect) -> LogoBox:
    """Centered logo box for a ``size_px`` square image.

    The longer side is ``floor(size_px * percent / 100)``; the aspect of the
    box, not of the logo image, decides the shorter side.
    """
    logo_max = size_px * percent // 100
    w, h = box_dimensions(logo_max, aspect)
    return LogoBox(x=(size_px - w) // 2, y=(size_px - h) // 2, w=w, h=h)


def backing_radius(box: LogoBox, corner_radius_hint: int, padding: int = DEFAULT_PADDING_PX) -> int:
    """Backing corner radius, capped so the shape stays a valid rounded rect."""
    radius = min(box.w, box.h) * clamp(corner_radius_hint, 0, 100, 0) // 100
    return min(radius, (min(box.w, box.h) + 2 * padding) // 2)


def _overlaps(a: tuple[float, float, float, float], b: tuple[float, float, float, float]) -> bool:
    ax0, ay0, ax1, ay1 = a
    bx0, by0, bx1, by1 = b
    return ax0 < bx1 and bx0 < ax1 and ay0 < by1 and by0 < ay1


def finder_regions(matrix: BitMatrix, size_px: int, margin_px: int) -> list[tuple[float, float, float, float]]:
    """Pixel rectangles (x0, y0, x1, y1) of each finder plus separator."""
    m = (size_px - 2 * margin_px) / matrix.size
    reach = (FINDER + 1) * m
    lo = margin_px
    hi = size_px - margin_px
    return [
        (lo, lo, lo + reach, lo + reach),
        (hi - reach, lo, hi, lo + reach),
        (lo, hi - reach, lo + reach, hi),
    ]


def logo_fits(
    matrix: BitMatrix,
    size_px: int,
    margin_px: int,
    box: LogoBox,
    padding: int = DEFAULT_PADDING_PX,
    safety_factor: float = 0.8,
) -> bool:
    """True if the backing leaves every finder intact and stays within the
    share of the symbol the EC level can recover."""
    if box.w < 1 or box.h < 1:
        return False
    bx, by, bw, bh = box.backing(padding)
    rect = (bx, by, bx + bw, by + bh)
    if any(_overlaps(rect, region) for region in finder_regions(matrix, size_px, margin_px)):
        return False

    lo, hi = margin_px, size_px - margin_px
    cover_w = max(0, min(rect[2], hi) - max(rect[0], lo))
    cover_h = max(0, min(rect[3], hi) - max(rect[1], lo))
    symbol_area = max(1, (hi - lo) ** 2)
    covered = cover_w * cover_h / symbol_area
    return covered <= ECC_RECOVERY[matrix.error_correction] * safety_factor


@trace
def max_safe_logo_percent(
    matrix: BitMatrix,
    size_px: int,
    margin_px: int,
    requested: int,
    aspect: LogoAspect,
    padding: int = DEFAULT_PADDING_PX,
    safety_factor: float = 0.8,
) -> int | None:
    """Largest percentage <= *requested* whose logo keeps the code scannable.

    Returns None when not even a 1% logo fits.
    """
    requested = clamp(requested, LOGO_PERCENT_MIN, LOGO_PERCENT_MAX, 20)
    for percent in range(requested, 0, -1):
        box = compute_logo_box(size_px, percent, aspect)
        if logo_fits(matrix, size_px, margin_px, box, padding, safety_factor):
            if percent != requested:
                audit("logo.shrunk", logger=log, requested=requested, allowed=percent,
                      ecc=matrix.error_correction, version=matrix.version)
            return percent
    return None


@trace
def composite(
    base: Image.Image,
    logo: Image.Image,
    style: StyleConfig,
    percent: int | None = None,
    padding: int = DEFAULT_PADDING_PX,
) -> tuple[Image.Image, LogoBox]:
    """Overlay *logo* at the centre of *base* on a rounded backing.

    Args:
        base: Rendered QR (RGB), square.
        logo: Decoded logo (any mode; alpha is honoured).
        style: Supplies aspect, corner radius hint, and backing color.
        percent: Logo size percentage; defaults to ``style.logo_size_percent``.
        padding: Backing overhang on each side in pixels.

    Returns:
        (new image, logo box)
    """
    size = base.size[0]
    percent = style.logo_size_percent if percent is None else percent
    box = compute_logo_box(size, percent, style.logo_aspect)

    result = base.convert("RGB")
    draw = ImageDraw.Draw(result)
    bx, by, bw, bh = box.backing(padding)
    draw.rounded_rectangle(
        [bx, by, bx + bw - 1, by + bh - 1],
        radius=backing_radius(box, style.corner_radius_hint, padding),
        fill=style.backing_color,
    )

    # stretch to the box: the box aspect wins over the logo's own
    logo_rgba = logo.convert("RGBA").resize((box.w, box.h), Image.LANCZOS)
    result.paste(logo_rgba, (box.x, box.y), logo_rgba)

    audit("logo.composited", logger=log,
          qr_size=f"{size}x{size}", box=f"{box.w}x{box.h}@{box.x},{box.y}",
          percent=percent, aspect=style.logo_aspect.value)
    return result, box
