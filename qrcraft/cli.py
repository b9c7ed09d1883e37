"""QR-Craft CLI: render, export, verify and serve styled QR codes."""

import argparse
import json
import sys
from pathlib import Path

from PIL import Image

from qrcraft.config import DOWNLOAD_SIZES
from qrcraft.errors import EncodingError, ExportError
from qrcraft.logging import audit, get_logger, setup_logging
from qrcraft.style import LogoAspect, ModuleStyle, StyleConfig

log = get_logger("cli")


def _style_from_args(args) -> StyleConfig:
    record = {}
    if args.style_json:
        record.update(json.loads(Path(args.style_json).read_text()))
    cli_values = {
        "foreground_color": args.fg,
        "background_color": args.bg,
        "module_style": args.style,
        "corner_radius_hint": args.radius,
        "logo_ref": args.logo,
        "logo_size_percent": args.logo_size,
        "logo_aspect": args.logo_aspect,
        "error_correction": args.ecc,
        "hide_background_dots": args.remove_logo_bg or None,
    }
    record.update({k: v for k, v in cli_values.items() if v is not None})
    return StyleConfig.from_record(record)


def cmd_render(args):
    """Render one QR code to a PNG file."""
    from qrcraft.pipeline import RenderPipeline

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    style = _style_from_args(args)

    with RenderPipeline() as pipeline:
        result = pipeline.render(args.payload, style, args.size)
    output.write_bytes(result.data)

    print(f"Rendered: {output} ({result.size_px}x{result.size_px})")
    print(f"  Version:  {result.version}, ECC: {style.error_correction}")
    print(f"  Strategy: {result.strategy}")
    if style.has_logo:
        if result.logo_composited:
            b = result.logo_box
            print(f"  Logo:     {b.w}x{b.h} at ({b.x},{b.y})")
        else:
            print("  Logo:     skipped")


def cmd_export(args):
    """Render the code at every download size."""
    from qrcraft.exporter import download_filename
    from qrcraft.pipeline import RenderPipeline

    out_dir = Path(args.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    style = _style_from_args(args)
    sizes = args.sizes or list(DOWNLOAD_SIZES)

    with RenderPipeline() as pipeline:
        results = pipeline.render_many(args.payload, style, sizes)
    for size, result in results.items():
        path = out_dir / download_filename(args.label, size)
        path.write_bytes(result.data)
        print(f"  {size:5d}px [{result.strategy:14s}] {path}")
    print(f"Exported {len(results)} sizes.")


def cmd_verify(args):
    """Decode a QR image and report per decoder."""
    from qrcraft.verify import verify

    img = Image.open(args.image)
    results = verify(img, expected_data=args.expected)

    all_pass = True
    for r in results:
        status = "PASS" if r.success else "FAIL"
        if not r.success:
            all_pass = False
        print(f"  [{r.decoder:12s}] {status} | {r.decode_time_ms:6.1f}ms | {r.decoded_data or r.error}")

    sys.exit(0 if all_pass else 1)


def cmd_serve(args):
    """Start the render server."""
    from qrcraft.pipeline import RenderPipeline
    from qrcraft.server import create_render_app

    app = create_render_app(RenderPipeline(), logo_hosts=tuple(args.logo_host))
    print(f"Starting render server on http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)


def _add_style_flags(p):
    p.add_argument("--style-json", default=None, help="JSON file with a stored QR style record")
    p.add_argument("--fg", default=None, help="Foreground colour (hex, e.g. '#000000')")
    p.add_argument("--bg", default=None, help="Background colour (hex)")
    p.add_argument("--style", default=None, choices=[s.value for s in ModuleStyle], help="Module style")
    p.add_argument("--radius", type=int, default=None, help="Corner radius hint 0-100")
    p.add_argument("--logo", default=None, help="Logo path, http(s) URL or data: URL")
    p.add_argument("--logo-size", type=int, default=None, help="Logo size as %% of the image (10-60)")
    p.add_argument("--logo-aspect", default=None, choices=[a.value for a in LogoAspect], help="Logo box aspect")
    p.add_argument("-e", "--ecc", default=None, choices=["L", "M", "Q", "H"], help="Error correction level")
    p.add_argument("--remove-logo-bg", action="store_true", help="Clear modules and white pixels behind the logo")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="qrcraft", description="QR-Craft: styled QR code rendering")

    # Global logging flags
    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- render ---
    p_render = subparsers.add_parser("render", help="Render a QR code to PNG")
    p_render.add_argument("payload", help="URL or text to encode")
    p_render.add_argument("-o", "--output", default="output/qr.png", help="Output file path")
    p_render.add_argument("-s", "--size", type=int, default=512, help="Output size in pixels")
    _add_style_flags(p_render)

    # --- export ---
    p_export = subparsers.add_parser("export", help="Render at every download size")
    p_export.add_argument("payload", help="URL or text to encode")
    p_export.add_argument("-d", "--output-dir", default="output", help="Output directory")
    p_export.add_argument("--label", default="qr", help="File name prefix")
    p_export.add_argument("--sizes", type=int, nargs="+", default=None,
                          help=f"Sizes in pixels (default: {' '.join(map(str, DOWNLOAD_SIZES))})")
    _add_style_flags(p_export)

    # --- verify ---
    p_ver = subparsers.add_parser("verify", help="Verify a QR code image")
    p_ver.add_argument("image", help="Path to QR code image")
    p_ver.add_argument("--expected", default=None, help="Expected decoded data (fails if mismatch)")

    # --- serve ---
    p_serve = subparsers.add_parser("serve", help="Start the HTTP render server")
    p_serve.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    p_serve.add_argument("--port", type=int, default=8080, help="Port to listen on")
    p_serve.add_argument("--debug", action="store_true", help="Enable debug mode")
    p_serve.add_argument("--logo-host", action="append", default=[],
                         help="Host that client logo URLs may point to (repeatable)")

    args = parser.parse_args(argv)

    level = "DEBUG" if args.verbose else "INFO"
    setup_logging(level=level, log_file=args.log_file)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    commands = {
        "render": cmd_render,
        "export": cmd_export,
        "verify": cmd_verify,
        "serve": cmd_serve,
    }
    try:
        commands[args.command](args)
    except (EncodingError, ExportError) as e:
        print(f"Could not generate QR code: {e}", file=sys.stderr)
        sys.exit(2)
    audit("cli.done", logger=log, command=args.command)


if __name__ == "__main__":
    main()
