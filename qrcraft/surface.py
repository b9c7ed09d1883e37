"""Render surfaces for styled drawing, plus a bounded-wait helper.

A surface is acquired, drawn on, read back and released; ``acquire`` is a
context manager so release happens on every exit path.
"""

import concurrent.futures
from contextlib import contextmanager

from PIL import Image, ImageDraw

from qrcraft.errors import StyleRenderError
from qrcraft.logging import audit, get_logger
from qrcraft.style import Color

log = get_logger("surface")


class RenderSurface:
    """An in-memory canvas drawn at ``scale`` times the output size."""

    def __init__(self, size_px: int, background: Color, scale: int = 1):
        self.size_px = size_px
        self.scale = max(1, int(scale))
        self.image = Image.new("RGB", (size_px * self.scale,) * 2, background)
        self.draw = ImageDraw.Draw(self.image)
        self.released = False

    def extract(self) -> Image.Image:
        """Pixels at the output size (LANCZOS downsample when supersampled)."""
        if self.released:
            raise StyleRenderError("surface already released")
        if self.scale == 1:
            return self.image.copy()
        return self.image.resize((self.size_px, self.size_px), Image.LANCZOS)

    def release(self) -> None:
        if not self.released:
            self.image.close()
            self.released = True


class SurfaceProvider:
    """Hands out render surfaces."""

    name = "pillow"

    def check(self) -> None:
        """Raise StyleRenderError if surfaces cannot be produced here."""
        if not hasattr(ImageDraw.ImageDraw, "rounded_rectangle"):
            raise StyleRenderError("Pillow without rounded_rectangle support")

    @contextmanager
    def acquire(self, size_px: int, background: Color, scale: int = 1):
        self.check()
        surface = RenderSurface(size_px, background, scale)
        try:
            yield surface
        finally:
            surface.release()


class UnavailableSurfaceProvider(SurfaceProvider):
    """Provider for environments without a drawing capability.

    Every acquisition fails, which routes renders to the basic rasterizer.
    """

    name = "unavailable"

    def __init__(self, reason: str = "no render surface in this environment"):
        self.reason = reason

    def check(self) -> None:
        raise StyleRenderError(self.reason)


def bounded_wait(executor: concurrent.futures.Executor, fn, timeout_s: float, what: str):
    """Run *fn* on *executor* and wait at most *timeout_s* for its result.

    A timed-out job is abandoned (its result discarded when it finishes),
    never interrupted.

    Raises:
        StyleRenderError: On timeout, or wrapping any exception *fn* raised.
    """
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout_s)
    except concurrent.futures.TimeoutError:
        future.cancel()
        audit("surface.timeout", logger=log, what=what, timeout_ms=round(timeout_s * 1000))
        raise StyleRenderError(f"{what} did not finish within {timeout_s * 1000:.0f}ms") from None
    except StyleRenderError:
        raise
    except Exception as e:
        raise StyleRenderError(f"{what} failed: {e}") from e
