"""Style configuration: the per-request visual settings of a QR image."""

from dataclasses import dataclass, replace
from enum import Enum

from qrcraft.logging import get_logger

log = get_logger("style")

Color = tuple[int, int, int]

BLACK: Color = (0, 0, 0)
WHITE: Color = (255, 255, 255)

LOGO_PERCENT_MIN = 10
LOGO_PERCENT_MAX = 60


class ModuleStyle(Enum):
    SQUARE = "square"
    ROUNDED = "rounded"
    DOTS = "dots"
    CLASSY = "classy"
    CLASSY_ROUNDED = "classy-rounded"
    EXTRA_ROUNDED = "extra-rounded"

    @classmethod
    def parse(cls, value) -> "ModuleStyle":
        """Unknown or missing styles render as plain squares."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.SQUARE


class LogoAspect(Enum):
    SQUARE = "1:1"
    WIDE = "16:9"
    PORTRAIT = "3:4"

    @classmethod
    def parse(cls, value) -> "LogoAspect":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            return cls.SQUARE


def parse_color(value, default: Color) -> Color:
    """Parse ``#rgb`` / ``#rrggbb`` / ``#rrggbbaa`` strings or RGB(A) tuples.

    Anything unparseable yields *default*; colors are validated upstream,
    so this only guards against crashing on bad records.
    """
    if isinstance(value, (tuple, list)) and len(value) >= 3:
        try:
            return tuple(max(0, min(255, int(ch))) for ch in value[:3])
        except (TypeError, ValueError):
            return default
    if not isinstance(value, str):
        return default
    s = value.strip().lstrip("#")
    if len(s) in (3, 4):
        s = "".join(ch * 2 for ch in s)
    if len(s) not in (6, 8):
        return default
    try:
        return tuple(int(s[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return default


def clamp(value, lo: int, hi: int, default: int) -> int:
    try:
        x = int(value)
    except (TypeError, ValueError):
        return default
    return max(lo, min(hi, x))


@dataclass(frozen=True)
class StyleConfig:
    """Immutable style for one render request.

    Fields are normalised on construction: colors become RGB tuples, enums
    are parsed, and numeric ranges are clamped.
    """

    foreground_color: Color = BLACK
    background_color: Color = WHITE
    module_style: ModuleStyle = ModuleStyle.SQUARE
    corner_radius_hint: int = 0
    logo_ref: bytes | str | None = None
    logo_size_percent: int = 20
    logo_aspect: LogoAspect = LogoAspect.SQUARE
    error_correction: str = "M"
    backing_color: Color = WHITE
    hide_background_dots: bool = False

    def __post_init__(self):
        # frozen dataclass: normalise through object.__setattr__
        fix = lambda name, value: object.__setattr__(self, name, value)  # noqa: E731
        fix("foreground_color", parse_color(self.foreground_color, BLACK))
        fix("background_color", parse_color(self.background_color, WHITE))
        fix("backing_color", parse_color(self.backing_color, WHITE))
        fix("module_style", ModuleStyle.parse(self.module_style))
        fix("logo_aspect", LogoAspect.parse(self.logo_aspect))
        fix("corner_radius_hint", clamp(self.corner_radius_hint, 0, 100, 0))
        fix("logo_size_percent", clamp(self.logo_size_percent, LOGO_PERCENT_MIN, LOGO_PERCENT_MAX, 20))
        ecc = str(self.error_correction).upper()
        fix("error_correction", ecc if ecc in ("L", "M", "Q", "H") else "M")
        if isinstance(self.logo_ref, bytearray):
            fix("logo_ref", bytes(self.logo_ref))
        if self.logo_ref in ("", b""):
            fix("logo_ref", None)
        fix("hide_background_dots", bool(self.hide_background_dots))

    @classmethod
    def from_record(cls, record: dict) -> "StyleConfig":
        """Build a style from a stored QR record.

        Accepts the camelCase keys used by the records API (``fgColor``,
        ``styleType``, ``logoSizePct`` ...) as well as the field names.
        """
        def pick(*keys, default=None):
            for k in keys:
                if record.get(k) is not None:
                    return record[k]
            return default

        return cls(
            foreground_color=pick("foreground_color", "fgColor", default="#000000"),
            background_color=pick("background_color", "bgColor", default="#ffffff"),
            module_style=pick("module_style", "styleType", default="square"),
            corner_radius_hint=pick("corner_radius_hint", "cornerRadius", default=0),
            logo_ref=pick("logo_ref", "logoUrl"),
            logo_size_percent=pick("logo_size_percent", "logoSizePct", default=20),
            logo_aspect=pick("logo_aspect", "logoAspect", default="1:1"),
            error_correction=pick("error_correction", "errorCorrection", default="M"),
            backing_color=pick("backing_color", "backingColor", default="#ffffff"),
            hide_background_dots=pick("hide_background_dots", "removeLogoBg", default=False),
        )

    @property
    def has_logo(self) -> bool:
        return self.logo_ref is not None

    def requires_styled(self) -> bool:
        """True when anything beyond flat square modules is requested."""
        return (
            self.module_style is not ModuleStyle.SQUARE
            or self.corner_radius_hint > 0
            or self.has_logo
        )

    def without_logo(self) -> "StyleConfig":
        return replace(self, logo_ref=None)

    def describe(self) -> dict:
        """Loggable summary (logo bytes are never logged)."""
        if isinstance(self.logo_ref, bytes):
            logo = f"<bytes[{len(self.logo_ref)}]>"
        else:
            logo = self.logo_ref[:80] if self.logo_ref else None
        return {
            "style": self.module_style.value,
            "radius": self.corner_radius_hint,
            "ecc": self.error_correction,
            "logo": logo,
            "logo_pct": self.logo_size_percent,
            "aspect": self.logo_aspect.value,
        }
