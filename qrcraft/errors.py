"""Error taxonomy for the render pipeline.

Only :class:`EncodingError` and :class:`ExportError` reach callers.
:class:`StyleRenderError` and :class:`LogoLoadError` are recovered inside
the pipeline and only show up in the logs.
"""


class QRCraftError(Exception):
    """Base class for all qrcraft errors."""


class EncodingError(QRCraftError):
    """Payload cannot be encoded at any supported version for the EC level."""


class StyleRenderError(QRCraftError):
    """Styled rendering unavailable, failed, or timed out."""


class LogoLoadError(QRCraftError):
    """Logo reference could not be fetched or decoded."""


class ExportError(QRCraftError):
    """Final raster could not be serialized at the requested size."""
