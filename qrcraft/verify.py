"""Scan verification: decode rendered images with real QR readers."""

import time
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image

from qrcraft.logging import audit, get_logger, trace

log = get_logger("verify")


@dataclass
class ScanResult:
    """Result of a single scan attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None


def _flatten(image: Image.Image) -> Image.Image:
    """RGB on white, so transparent pixels read as background."""
    if image.mode in ("RGBA", "LA", "P"):
        rgba = image.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, (255, 255, 255))
        canvas.paste(rgba, mask=rgba.split()[3])
        return canvas
    return image.convert("RGB")


@trace
def scan_pyzbar(image: Image.Image) -> ScanResult:
    """Scan with pyzbar (wraps ZBar; needs the system zbar library)."""
    start = time.perf_counter()
    try:
        from pyzbar.pyzbar import decode as pyzbar_decode

        results = pyzbar_decode(_flatten(image))
        elapsed = (time.perf_counter() - start) * 1000
        if results:
            data = results[0].data.decode("utf-8", errors="replace")
            audit("scan.verified", logger=log, decoder="pyzbar/zbar", success=True,
                  time_ms=round(elapsed, 1), data=data[:80])
            return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed,
                              decoder="pyzbar/zbar")
        audit("scan.verified", logger=log, decoder="pyzbar/zbar", success=False,
              time_ms=round(elapsed, 1), error="No QR code detected")
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="pyzbar/zbar",
                          error="No QR code detected")
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, decoder="pyzbar/zbar", error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="pyzbar/zbar", error=str(e))


@trace
def scan_opencv(image: Image.Image) -> ScanResult:
    """Scan with OpenCV's built-in QR detector."""
    start = time.perf_counter()
    try:
        gray = cv2.cvtColor(np.array(_flatten(image)), cv2.COLOR_RGB2GRAY)
        data, _, _ = cv2.QRCodeDetector().detectAndDecode(gray)
        elapsed = (time.perf_counter() - start) * 1000
        if data:
            audit("scan.verified", logger=log, decoder="opencv", success=True,
                  time_ms=round(elapsed, 1), data=data[:80])
            return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder="opencv")
        audit("scan.verified", logger=log, decoder="opencv", success=False,
              time_ms=round(elapsed, 1), error="No QR code detected")
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="opencv",
                          error="No QR code detected")
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, decoder="opencv", error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="opencv", error=str(e))


SCANNERS = {"pyzbar": scan_pyzbar, "opencv": scan_opencv}


@trace
def verify(image: Image.Image, expected_data: str | None = None,
           decoders=("pyzbar", "opencv")) -> list[ScanResult]:
    """Run the chosen decoders on an image.

    Args:
        image: PIL Image containing a QR code.
        expected_data: If provided, a decode with different content fails.
        decoders: Names from ``SCANNERS``.

    Returns:
        One ScanResult per decoder.
    """
    results = []
    for name in decoders:
        result = SCANNERS[name](image)
        if result.success and expected_data is not None and result.decoded_data != expected_data:
            result.success = False
            result.error = f"Data mismatch: got '{result.decoded_data}', expected '{expected_data}'"
        results.append(result)
    return results


def is_scannable(image: Image.Image, expected_data: str | None = None, decoders=("pyzbar", "opencv")) -> bool:
    """True if any decoder reads the code (and its content matches)."""
    return any(r.success for r in verify(image, expected_data, decoders))
