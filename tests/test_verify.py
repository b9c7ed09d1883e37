import pytest

pytest.importorskip("cv2")

from qrcraft.style import StyleConfig  # noqa: E402
from qrcraft.verify import is_scannable, verify  # noqa: E402

URL = "https://example.com/x"


@pytest.mark.parametrize("module_style", ["square", "rounded", "extra-rounded"])
def test_rendered_codes_scan(pipeline, module_style):
    result = pipeline.render(URL, StyleConfig(module_style=module_style, corner_radius_hint=30), 512)
    assert is_scannable(result.image(), URL, decoders=("opencv",))


def test_logo_code_scans(pipeline, logo_png):
    style = StyleConfig(module_style="rounded", logo_ref=logo_png, logo_size_percent=20,
                        error_correction="H")
    result = pipeline.render(URL, style, 512)
    assert result.logo_composited
    assert is_scannable(result.image(), URL, decoders=("opencv",))


def test_mismatch_is_reported(pipeline):
    result = pipeline.render(URL, StyleConfig(), 256)
    (scan,) = verify(result.image(), expected_data="https://other.example", decoders=("opencv",))
    assert not scan.success
    assert "mismatch" in scan.error
