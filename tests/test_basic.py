import pytest

from qrcraft import basic
from qrcraft.matrix import encode

from conftest import to_array

FG = (10, 20, 120)
BG = (250, 250, 240)


def test_output_size_and_margin():
    matrix = encode("hello", "M")
    img = basic.rasterize(matrix, FG, BG, 300, 24)
    arr = to_array(img)
    assert img.size == (300, 300)
    assert tuple(arr[0, 0]) == BG
    assert tuple(arr[23, 150]) == BG
    # top-left finder corner starts right inside the quiet zone
    assert tuple(arr[24, 24]) == FG
    assert tuple(arr[23, 23]) == BG


def test_margin_never_below_one_pixel():
    matrix = encode("hello", "M")
    arr = to_array(basic.rasterize(matrix, FG, BG, 100, 0))
    assert tuple(arr[0, 0]) == BG
    assert tuple(arr[1, 1]) == FG


@pytest.mark.parametrize("size", [1, 5, 20, 21, 2000])
def test_any_size_renders(size):
    matrix = encode("https://example.com/x", "M")
    img = basic.rasterize(matrix, FG, BG, size, max(1, size // 20))
    assert img.size == (size, size)


def test_modules_follow_matrix():
    matrix = encode("hello", "M")
    n = matrix.size
    img = basic.rasterize(matrix, FG, BG, n * 10 + 20, 10)
    arr = to_array(img)
    for r in range(n):
        for c in range(n):
            expected = FG if matrix.modules[r][c] else BG
            assert tuple(arr[10 + r * 10 + 5, 10 + c * 10 + 5]) == expected


def test_basic_render_decodes(cv2_decode):
    matrix = encode("https://example.com/x", "M")
    img = basic.rasterize(matrix, (0, 0, 0), (255, 255, 255), 512, 40)
    assert cv2_decode(img) == "https://example.com/x"
