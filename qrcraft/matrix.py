"""Matrix encoding: payload text to a QR bit-matrix, no rendering."""

from dataclasses import dataclass
from enum import Enum
from functools import cached_property

import qrcode
import qrcode.constants
import qrcode.exceptions

from qrcraft.errors import EncodingError
from qrcraft.logging import audit, get_logger, trace

log = get_logger("matrix")

MAX_VERSION = 40
FINDER = 7


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {"L": ECCLevel.L, "M": ECCLevel.M, "Q": ECCLevel.Q, "H": ECCLevel.H}

# Share of codewords Reed-Solomon can restore at each level
ECC_RECOVERY = {"L": 0.07, "M": 0.15, "Q": 0.25, "H": 0.30}


@dataclass(frozen=True)
class BitMatrix:
    """A QR symbol as a square grid of dark (True) / light (False) modules.

    No quiet zone is included; renderers add their own margin.
    """

    modules: tuple[tuple[bool, ...], ...]
    version: int
    error_correction: str

    @property
    def size(self) -> int:
        return len(self.modules)

    def finder_origins(self) -> list[tuple[int, int]]:
        """Top-left (row, col) of the three finder patterns: TL, TR, BL."""
        n = self.size
        return [(0, 0), (0, n - FINDER), (n - FINDER, 0)]

    @cached_property
    def _finder_cells(self) -> frozenset:
        # 7x7 finders plus their one-module separators
        n = self.size
        cells = set()
        for orig_r, orig_c in self.finder_origins():
            for r in range(orig_r - 1, orig_r + FINDER + 1):
                for c in range(orig_c - 1, orig_c + FINDER + 1):
                    if 0 <= r < n and 0 <= c < n:
                        cells.add((r, c))
        return frozenset(cells)

    def is_finder(self, r: int, c: int) -> bool:
        """True if (r, c) belongs to a finder pattern or its separator."""
        return (r, c) in self._finder_cells

    def is_dark(self, r: int, c: int) -> bool:
        """Dark test that treats anything outside the grid as light."""
        n = self.size
        return 0 <= r < n and 0 <= c < n and self.modules[r][c]


@trace
def encode(payload: str, error_correction: str = "M") -> BitMatrix:
    """Encode *payload* into the smallest QR version that fits.

    Args:
        payload: Text to encode (URL, plain text, ...). Must be non-empty.
        error_correction: L/M/Q/H.

    Raises:
        EncodingError: Empty payload, or too large for version 40 at this level.
    """
    if not payload:
        raise EncodingError("payload must be a non-empty string")
    ecc = error_correction.upper()
    if ecc not in ECC_NAMES:
        raise EncodingError(f"unknown error-correction level {error_correction!r}")

    qr = qrcode.QRCode(
        version=None,
        error_correction=ECC_NAMES[ecc].value,
        box_size=1,
        border=0,
    )
    try:
        qr.add_data(payload)
        qr.make(fit=True)
    except (qrcode.exceptions.DataOverflowError, ValueError) as e:
        audit("matrix.overflow", logger=log, ecc=ecc, payload_len=len(payload))
        raise EncodingError(
            f"payload of {len(payload)} chars does not fit a version {MAX_VERSION} "
            f"QR code at EC level {ecc}"
        ) from e

    matrix = BitMatrix(
        modules=tuple(tuple(bool(m) for m in row) for row in qr.modules),
        version=qr.version,
        error_correction=ecc,
    )
    audit("matrix.encoded", logger=log,
          payload=payload[:80], version=matrix.version,
          size=f"{matrix.size}x{matrix.size}", ecc=ecc)
    return matrix
