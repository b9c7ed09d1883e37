import numpy as np
import pytest
from PIL import Image

from qrcraft import basic
from qrcraft.compositor import (
    LogoBox,
    backing_radius,
    box_dimensions,
    composite,
    compute_logo_box,
    finder_regions,
    logo_fits,
    max_safe_logo_percent,
)
from qrcraft.exporter import compute_margin
from qrcraft.matrix import encode
from qrcraft.style import LogoAspect, StyleConfig

from conftest import to_array


def test_aspect_math():
    assert box_dimensions(100, LogoAspect.SQUARE) == (100, 100)
    assert box_dimensions(100, LogoAspect.WIDE) == (100, 56)
    assert box_dimensions(100, LogoAspect.PORTRAIT) == (75, 100)


def test_box_is_centered():
    box = compute_logo_box(512, 24, LogoAspect.SQUARE)
    assert box == LogoBox(x=195, y=195, w=122, h=122)
    wide = compute_logo_box(400, 25, LogoAspect.WIDE)
    assert (wide.w, wide.h) == (100, 56)
    assert (wide.x, wide.y) == (150, 172)


@pytest.mark.parametrize("aspect", list(LogoAspect))
def test_box_never_exceeds_requested_share(aspect):
    for size in (256, 512, 1024, 2000):
        for percent in range(10, 61):
            box = compute_logo_box(size, percent, aspect)
            assert max(box.w, box.h) <= size * percent / 100


def test_backing_radius_follows_hint_and_is_capped():
    box = LogoBox(0, 0, 100, 50)
    assert backing_radius(box, 0) == 0
    assert backing_radius(box, 20) == 10
    assert backing_radius(box, 100) == (50 + 12) // 2


def test_guard_keeps_requested_size_when_safe():
    matrix = encode("https://example.com/x", "M")
    margin = compute_margin(512)
    assert max_safe_logo_percent(matrix, 512, margin, 24, LogoAspect.SQUARE) == 24


@pytest.mark.parametrize("aspect", list(LogoAspect))
def test_guard_shrinks_oversized_logo(aspect):
    matrix = encode("hello", "L")
    margin = compute_margin(512)
    percent = max_safe_logo_percent(matrix, 512, margin, 60, aspect)
    assert percent is not None
    assert percent < 60
    assert logo_fits(matrix, 512, margin, compute_logo_box(512, percent, aspect))
    assert not logo_fits(matrix, 512, margin, compute_logo_box(512, percent + 1, aspect))


def test_guard_rejects_boxes_touching_finders():
    matrix = encode("hello", "H")
    margin = compute_margin(512)
    box = compute_logo_box(512, 60, LogoAspect.SQUARE)
    x0, y0, _, _ = finder_regions(matrix, 512, margin)[0]
    assert box.x - 6 < x0 + (512 - 2 * margin) * 8 / matrix.size
    assert not logo_fits(matrix, 512, margin, box, safety_factor=100.0)


def test_composite_places_logo_and_backing(logo_png):
    matrix = encode("https://example.com/x", "M")
    base = basic.rasterize(matrix, (0, 0, 0), (255, 255, 255), 512, compute_margin(512))
    logo = Image.new("RGB", (200, 50), (220, 20, 20))
    style = StyleConfig(logo_size_percent=24)

    out, box = composite(base, logo, style)
    arr = to_array(out)
    assert out.size == (512, 512)
    assert box == LogoBox(195, 195, 122, 122)
    # logo stretched over the whole box, ignoring its own 4:1 shape
    assert tuple(arr[box.y + 2, box.x + 2]) == (220, 20, 20)
    assert tuple(arr[box.y + box.h - 3, box.x + box.w - 3]) == (220, 20, 20)
    # backing band around the logo is white
    assert tuple(arr[box.y + box.h // 2, box.x - 3]) == (255, 255, 255)
    assert tuple(arr[box.y - 3, box.x + box.w // 2]) == (255, 255, 255)
    # input image untouched
    assert to_array(base)[box.y + 2, box.x + 2].tolist() != [220, 20, 20]


def test_composite_uses_backing_color():
    matrix = encode("hello", "H")
    base = basic.rasterize(matrix, (0, 0, 0), (255, 255, 255), 400, compute_margin(400))
    logo = Image.new("RGBA", (10, 10), (0, 0, 0, 0))
    out, box = composite(base, logo, StyleConfig(backing_color="#00ff00", logo_size_percent=20))
    # fully transparent logo shows the backing everywhere in the box
    assert tuple(to_array(out)[box.y + box.h // 2, box.x + box.w // 2]) == (0, 255, 0)


@pytest.mark.parametrize("aspect", list(LogoAspect))
def test_compositing_never_touches_finders(aspect):
    matrix = encode("https://example.com/x", "M")
    size = 512
    margin = compute_margin(size)
    base = basic.rasterize(matrix, (0, 0, 0), (255, 255, 255), size, margin)
    percent = max_safe_logo_percent(matrix, size, margin, 60, aspect)
    out, _ = composite(base, Image.new("RGB", (30, 30), (0, 0, 255)),
                       StyleConfig(logo_aspect=aspect), percent=percent)

    before, after = to_array(base), to_array(out)
    for x0, y0, x1, y1 in finder_regions(matrix, size, margin):
        region = (slice(int(y0), int(np.ceil(y1))), slice(int(x0), int(np.ceil(x1))))
        assert np.array_equal(before[region], after[region])
