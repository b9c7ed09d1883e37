"""Styled renderer: shaped modules and distinct finder patterns.

Finder patterns are drawn as cohesive 7x7 blocks at their exact grid
position and size; styling only changes their corner rounding.
"""

import concurrent.futures

from PIL import ImageDraw

from qrcraft.logging import audit, get_logger
from qrcraft.matrix import FINDER, BitMatrix
from qrcraft.style import Color, ModuleStyle, StyleConfig
from qrcraft.surface import SurfaceProvider, bounded_wait

log = get_logger("styled")

# Corner flags are (top_left, top_right, bottom_right, bottom_left)
ALL_CORNERS = (True, True, True, True)


def _cell_edges(n: int, offset: int, inner: int) -> list[int]:
    """Pixel edge positions for an *n*-module grid spanning *inner* pixels."""
    return [offset + round(i * inner / n) for i in range(n + 1)]


def _exposed_corners(matrix: BitMatrix, r: int, c: int) -> tuple[bool, bool, bool, bool]:
    """Corners whose two adjacent sides have no dark neighbour."""
    top = not matrix.is_dark(r - 1, c)
    right = not matrix.is_dark(r, c + 1)
    bottom = not matrix.is_dark(r + 1, c)
    left = not matrix.is_dark(r, c - 1)
    return (top and left, top and right, bottom and right, bottom and left)


def _draw_module(
    draw: ImageDraw.ImageDraw,
    box: tuple[int, int, int, int],
    color: Color,
    shape: ModuleStyle,
    exposed: tuple[bool, bool, bool, bool],
) -> None:
    """Draw a single body module with the given shape."""
    x0, y0, x1, y1 = box
    w = min(x1 - x0, y1 - y0) + 1
    half = w // 2

    if shape is ModuleStyle.DOTS:
        draw.ellipse(box, fill=color)
        return

    if shape in (ModuleStyle.ROUNDED, ModuleStyle.EXTRA_ROUNDED):
        radius = half if shape is ModuleStyle.EXTRA_ROUNDED else max(1, int(w * 0.35))
        corners = exposed
    elif shape in (ModuleStyle.CLASSY, ModuleStyle.CLASSY_ROUNDED):
        # leaf shape: only the top-left / bottom-right diagonal rounds
        tl, _, br, _ = exposed
        radius = half
        corners = (tl, False, br, False)
        if shape is ModuleStyle.CLASSY_ROUNDED and exposed == ALL_CORNERS:
            corners = ALL_CORNERS
    else:
        draw.rectangle(box, fill=color)
        return

    if half < 1 or not any(corners):
        draw.rectangle(box, fill=color)
        return
    if corners == ALL_CORNERS and radius >= half:
        draw.ellipse(box, fill=color)
        return
    # Pillow needs span >= 2r + 2 where two rounded corners share a side
    radius = min(radius, (min(x1 - x0, y1 - y0) - 2) // 2)
    if radius < 1:
        draw.rectangle(box, fill=color)
    else:
        draw.rounded_rectangle(box, radius=radius, fill=color, corners=corners)


def _draw_finders(
    draw: ImageDraw.ImageDraw,
    matrix: BitMatrix,
    edges: list[int],
    fg: Color,
    bg: Color,
    rounded: bool,
) -> None:
    """Draw the three finder patterns: 7x7 ring, 5x5 gap, 3x3 centre."""
    for orig_r, orig_c in matrix.finder_origins():
        outer = (edges[orig_c], edges[orig_r],
                 edges[orig_c + FINDER] - 1, edges[orig_r + FINDER] - 1)
        gap = (edges[orig_c + 1], edges[orig_r + 1],
               edges[orig_c + FINDER - 1] - 1, edges[orig_r + FINDER - 1] - 1)
        centre = (edges[orig_c + 2], edges[orig_r + 2],
                  edges[orig_c + FINDER - 2] - 1, edges[orig_r + FINDER - 2] - 1)

        if not rounded:
            draw.rectangle(outer, fill=fg)
            draw.rectangle(gap, fill=bg)
            draw.rectangle(centre, fill=fg)
            continue

        # extra-rounded ring, dot centre
        span = outer[2] - outer[0] + 1
        draw.rounded_rectangle(outer, radius=max(1, int(span * 0.36)), fill=fg)
        gap_span = gap[2] - gap[0] + 1
        draw.rounded_rectangle(gap, radius=max(1, int(gap_span * 0.3)), fill=bg)
        draw.ellipse(centre, fill=fg)


def draw_styled(
    draw: ImageDraw.ImageDraw,
    matrix: BitMatrix,
    style: StyleConfig,
    canvas_px: int,
    margin_px: int,
    hidden_box: tuple[int, int, int, int] | None = None,
) -> int:
    """Draw *matrix* onto *draw* at canvas scale. Returns body modules drawn.

    Args:
        hidden_box: (x, y, w, h) in canvas pixels; body modules whose centre
            falls inside are left out so a logo sits on a clean background.
    """
    n = matrix.size
    inner = canvas_px - 2 * margin_px
    edges = _cell_edges(n, margin_px, inner)
    fg = style.foreground_color
    shape = style.module_style

    _draw_finders(draw, matrix, edges, fg, style.background_color,
                  rounded=style.corner_radius_hint > 0)

    drawn = 0
    for r in range(n):
        for c in range(n):
            if not matrix.modules[r][c] or matrix.is_finder(r, c):
                continue
            box = (edges[c], edges[r], edges[c + 1] - 1, edges[r + 1] - 1)
            if hidden_box is not None:
                hx, hy, hw, hh = hidden_box
                cx = (box[0] + box[2]) / 2
                cy = (box[1] + box[3]) / 2
                if hx <= cx < hx + hw and hy <= cy < hy + hh:
                    continue
            _draw_module(draw, box, fg, shape, _exposed_corners(matrix, r, c))
            drawn += 1
    return drawn


def render_styled(
    matrix: BitMatrix,
    style: StyleConfig,
    size_px: int,
    margin_px: int,
    *,
    provider: SurfaceProvider,
    executor: concurrent.futures.Executor,
    timeout_s: float,
    supersample: int = 2,
    logo_box: tuple[int, int, int, int] | None = None,
):
    """Render *matrix* with *style* at ``size_px``.

    Drawing happens on a surface from *provider* inside *executor*, and the
    caller waits at most *timeout_s* for it.

    Args:
        logo_box: (x, y, w, h) of the logo backing in output pixels. Only
            used when ``style.hide_background_dots`` is set.

    Raises:
        StyleRenderError: Surface unavailable, drawing failed, or timed out.
    """
    scale = max(1, int(supersample))
    hidden = None
    if logo_box is not None and style.hide_background_dots:
        hidden = tuple(v * scale for v in logo_box)

    def job():
        with provider.acquire(size_px, style.background_color, scale) as surface:
            drawn = draw_styled(surface.draw, matrix, style, size_px * scale,
                                margin_px * scale, hidden_box=hidden)
            image = surface.extract()
        return image, drawn

    image, drawn = bounded_wait(executor, job, timeout_s, what=f"styled render {size_px}px")
    audit("styled.rendered", logger=log,
          size=size_px, style=style.module_style.value,
          finders="rounded" if style.corner_radius_hint > 0 else "square",
          modules=drawn, hidden_logo_area=hidden is not None)
    return image
