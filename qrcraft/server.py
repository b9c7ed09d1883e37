"""HTTP render endpoint for preview and download clients."""

from qrcraft.config import DOWNLOAD_SIZES
from qrcraft.errors import EncodingError, ExportError
from qrcraft.exporter import download_filename
from qrcraft.logging import audit, get_logger, trace
from qrcraft.logo import is_public_logo_ref
from qrcraft.pipeline import RenderPipeline, RenderResult
from qrcraft.style import StyleConfig

log = get_logger("server")

# query-string parameter -> style record key
QUERY_STYLE_KEYS = {
    "fg": "fgColor",
    "bg": "bgColor",
    "style": "styleType",
    "radius": "cornerRadius",
    "logo": "logoUrl",
    "logo_size": "logoSizePct",
    "aspect": "logoAspect",
    "ecc": "errorCorrection",
}


@trace
def create_render_app(pipeline: RenderPipeline, logo_hosts=()):
    """Create a Flask app that serves rendered QR codes as PNG.

    Logo references from clients are limited to inline data and http(s)
    URLs on *logo_hosts*; anything else renders without the logo.
    """
    from flask import Flask, Response, jsonify, request

    app = Flask(__name__)

    def _client_style(record: dict) -> StyleConfig:
        style = StyleConfig.from_record(record)
        if style.has_logo and not is_public_logo_ref(style.logo_ref, logo_hosts):
            log.warning("Rejected logo reference from client: %s", str(style.logo_ref)[:80])
            audit("logo.rejected", logger=log, ref=str(style.logo_ref)[:80])
            return style.without_logo()
        return style

    def _png(result: RenderResult, label: str | None = None) -> Response:
        resp = Response(result.data, mimetype="image/png")
        resp.headers["X-QR-Strategy"] = result.strategy
        resp.headers["X-QR-Logo"] = "1" if result.logo_composited else "0"
        resp.headers["X-QR-Version"] = str(result.version)
        if label:
            name = download_filename(label, result.size_px)
            resp.headers["Content-Disposition"] = f'attachment; filename="{name}"'
        return resp

    def _failure(e: Exception):
        audit("render.rejected", logger=log, error=str(e)[:120], kind=type(e).__name__)
        return jsonify({"error": "could not generate QR code", "detail": str(e)}), 400

    @app.route("/qr.png")
    def render_query():
        payload = request.args.get("data", "")
        size = request.args.get("size", 512, type=int)
        record = {key: request.args[param] for param, key in QUERY_STYLE_KEYS.items() if param in request.args}
        try:
            result = pipeline.render(payload, _client_style(record), size)
        except (EncodingError, ExportError) as e:
            return _failure(e)
        return _png(result, request.args.get("download"))

    @app.route("/api/render", methods=["POST"])
    def render_json():
        data = request.get_json(silent=True)
        if not data or "payload" not in data:
            return jsonify({"error": "Missing 'payload' field"}), 400
        size = data.get("size", 512)
        style = _client_style(data.get("style") or {})
        try:
            result = pipeline.render(data["payload"], style, size)
        except (EncodingError, ExportError) as e:
            return _failure(e)
        return _png(result, data.get("label"))

    @app.route("/api/sizes")
    def sizes():
        return jsonify({"sizes": list(DOWNLOAD_SIZES)})

    return app
