"""Basic rasterizer: flat square modules, the fallback of last resort."""

from PIL import Image

from qrcraft.matrix import BitMatrix
from qrcraft.style import Color


def rasterize(
    matrix: BitMatrix,
    fg: Color,
    bg: Color,
    size_px: int,
    margin_px: int,
) -> Image.Image:
    """Render *matrix* as a ``size_px`` square RGB image.

    The symbol is drawn at one pixel per module and scaled up with
    nearest-neighbour resampling into the area inside the quiet zone, so
    module edges stay hard at any size. Nothing here touches the network,
    fonts or the filesystem.

    Args:
        matrix: Encoded symbol.
        fg: Dark module color.
        bg: Light module and quiet-zone color.
        size_px: Output width and height.
        margin_px: Quiet zone on each side; at least 1px is kept.
    """
    size_px = max(1, int(size_px))
    margin_px = max(1, int(margin_px))
    if 2 * margin_px >= size_px:
        margin_px = max(0, (size_px - 1) // 2)
    inner = size_px - 2 * margin_px

    n = matrix.size
    # 255 = dark module, used as the paste mask for the foreground
    bits = Image.new("L", (n, n), 0)
    bits.putdata([255 if dark else 0 for row in matrix.modules for dark in row])
    mask = bits.resize((inner, inner), Image.NEAREST)

    img = Image.new("RGB", (size_px, size_px), bg)
    ink = Image.new("RGB", (inner, inner), fg)
    img.paste(ink, (margin_px, margin_px), mask)
    return img
