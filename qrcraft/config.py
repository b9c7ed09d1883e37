"""Render settings, with overrides from QRCRAFT_* environment variables."""

import os
from dataclasses import dataclass, fields

from qrcraft.logging import get_logger

log = get_logger("config")

ENV_PREFIX = "QRCRAFT_"

# Sizes offered by the download menu
DOWNLOAD_SIZES = (256, 512, 1024, 1536, 2000)


@dataclass(frozen=True)
class RenderSettings:
    """Tunables shared by every render.

    margin_ratio / min_margin_px: quiet zone is
        ``max(min_margin_px, floor(size_px * margin_ratio))`` at every size.
    styled_timeout_ms: bounded wait for the styled surface at 1024px;
        larger targets scale it linearly.
    logo_timeout_s: network timeout when fetching a logo URL.
    logo_max_px: decoded logos are downscaled to this on the longer side.
    supersample: styled drawing scale factor before LANCZOS downsampling.
    max_size_px: largest exportable target size.
    backing_padding_px: logo backing overhang on every side.
    logo_safety_factor: share of the EC recovery capacity a logo may use.
    """

    margin_ratio: float = 0.08
    min_margin_px: int = 4
    styled_timeout_ms: int = 1000
    logo_timeout_s: float = 5.0
    logo_max_px: int = 512
    supersample: int = 2
    max_size_px: int = 4096
    backing_padding_px: int = 6
    logo_safety_factor: float = 0.8

    @classmethod
    def from_env(cls, environ=None) -> "RenderSettings":
        """Build settings from ``QRCRAFT_<FIELD>`` variables.

        Unparseable values are ignored with a warning and the default kept.
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            cast = float if f.type in (float, "float") else int
            try:
                overrides[f.name] = cast(raw)
            except ValueError:
                log.warning("Ignoring %s%s=%r (expected %s)", ENV_PREFIX, f.name.upper(), raw, cast.__name__)
        return cls(**overrides)

    def styled_timeout_for(self, size_px: int) -> float:
        """Styled-render wait window in seconds for a target size."""
        return self.styled_timeout_ms / 1000.0 * max(1.0, size_px / 1024)
