"""Logo resolution: turn a logo reference into decoded RGBA pixels."""

import base64
import binascii
import io
from pathlib import Path
from urllib.parse import unquote_to_bytes, urlsplit

import numpy as np
import requests
from PIL import Image, UnidentifiedImageError

from qrcraft.errors import LogoLoadError
from qrcraft.logging import audit, get_logger, trace

log = get_logger("logo")


def _fetch_url(url: str, timeout_s: float) -> bytes:
    try:
        resp = requests.get(url, timeout=timeout_s)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise LogoLoadError(f"could not fetch logo {url[:80]}: {e}") from e
    return resp.content


def _decode_data_url(url: str) -> bytes:
    """Payload of a ``data:[<mime>][;base64],<data>`` URL."""
    header, sep, body = url.partition(",")
    if not sep:
        raise LogoLoadError("malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(body, validate=False)
        except (binascii.Error, ValueError) as e:
            raise LogoLoadError(f"bad base64 in data URL: {e}") from e
    return unquote_to_bytes(body)


def read_logo_bytes(ref: bytes | str, timeout_s: float = 5.0) -> bytes:
    """Raw encoded bytes behind a logo reference.

    Accepts raw bytes, ``data:`` URLs, ``http(s)://`` URLs (fetched with
    *timeout_s*) and filesystem paths.
    """
    if isinstance(ref, (bytes, bytearray)):
        return bytes(ref)
    if not isinstance(ref, str):
        raise LogoLoadError(f"unsupported logo reference type {type(ref).__name__}")
    if ref.startswith("data:"):
        return _decode_data_url(ref)
    if ref.startswith(("http://", "https://")):
        return _fetch_url(ref, timeout_s)
    try:
        return Path(ref).read_bytes()
    except OSError as e:
        raise LogoLoadError(f"could not read logo file {ref[:80]}: {e}") from e


def is_public_logo_ref(ref, allowed_hosts=()) -> bool:
    """True if a logo reference from an untrusted client may be resolved.

    Inline bytes and ``data:`` URLs are always allowed. ``http(s)`` URLs are
    allowed only when their host is in *allowed_hosts*. Filesystem paths are
    never allowed.
    """
    if isinstance(ref, (bytes, bytearray)):
        return True
    if not isinstance(ref, str):
        return False
    if ref.startswith("data:"):
        return True
    if ref.startswith(("http://", "https://")):
        host = (urlsplit(ref).hostname or "").lower()
        return host in {h.lower() for h in allowed_hosts}
    return False


def decode_logo(data: bytes, max_px: int = 512) -> Image.Image:
    """Decode image bytes to RGBA, downscaled so the longer side <= *max_px*."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise LogoLoadError(f"could not decode logo: {e}") from e

    img = img.convert("RGBA")
    w, h = img.size
    if w == 0 or h == 0:
        raise LogoLoadError("logo has no pixels")
    longest = max(w, h)
    if longest > max_px:
        scale = max_px / longest
        img = img.resize((max(1, round(w * scale)), max(1, round(h * scale))), Image.LANCZOS)
    return img


@trace
def remove_background(logo: Image.Image, threshold: int = 240) -> Image.Image:
    """Make near-white pixels transparent.

    Used for logos pasted on a plain white backdrop so only the mark
    itself covers the code.
    """
    arr = np.array(logo.convert("RGBA"))
    near_white = (arr[..., :3] >= threshold).all(axis=-1)
    arr[near_white, 3] = 0
    return Image.fromarray(arr, "RGBA")


def resolve_logo(ref: bytes | str, timeout_s: float = 5.0, max_px: int = 512) -> Image.Image:
    """Resolve *ref* to a decoded RGBA logo.

    Raises:
        LogoLoadError: Fetch, read, or decode failure.
    """
    data = read_logo_bytes(ref, timeout_s=timeout_s)
    logo = decode_logo(data, max_px=max_px)
    audit("logo.resolved", logger=log,
          source="bytes" if isinstance(ref, (bytes, bytearray)) else str(ref)[:40],
          encoded_bytes=len(data), size=f"{logo.size[0]}x{logo.size[1]}")
    return logo
