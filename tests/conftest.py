import io
import logging
import time

import numpy as np
import pytest
from PIL import Image

from qrcraft.config import RenderSettings
from qrcraft.pipeline import RenderPipeline
from qrcraft.surface import SurfaceProvider, UnavailableSurfaceProvider


class SlowSurfaceProvider(SurfaceProvider):
    """Surface that takes longer than any sane wait window to appear."""

    name = "slow"

    def __init__(self, delay_s: float = 0.5):
        self.delay_s = delay_s

    def check(self) -> None:
        time.sleep(self.delay_s)


def png_bytes(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def to_array(image: Image.Image) -> np.ndarray:
    return np.array(image.convert("RGB"))


@pytest.fixture
def settings():
    return RenderSettings(styled_timeout_ms=10000)


@pytest.fixture
def pipeline(settings):
    p = RenderPipeline(settings=settings)
    yield p
    p.close()


@pytest.fixture
def fallback_pipeline(settings):
    p = RenderPipeline(settings=settings, surface_provider=UnavailableSurfaceProvider())
    yield p
    p.close()


@pytest.fixture
def slow_pipeline():
    p = RenderPipeline(settings=RenderSettings(styled_timeout_ms=20),
                       surface_provider=SlowSurfaceProvider(0.5))
    yield p
    p.close()


@pytest.fixture
def logo_png():
    """A solid red 64x64 logo with a transparent 8px frame."""
    img = Image.new("RGBA", (64, 64), (0, 0, 0, 0))
    img.paste(Image.new("RGBA", (48, 48), (220, 20, 20, 255)), (8, 8))
    return png_bytes(img)


@pytest.fixture
def cv2_decode():
    cv2 = pytest.importorskip("cv2")

    def decode(image: Image.Image) -> str:
        gray = cv2.cvtColor(to_array(image), cv2.COLOR_RGB2GRAY)
        data, _, _ = cv2.QRCodeDetector().detectAndDecode(gray)
        return data

    return decode


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    root = logging.getLogger("qrcraft")
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
