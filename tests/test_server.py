import base64
import io

import pytest
from PIL import Image

from qrcraft.server import create_render_app

URL = "https://example.com/x"


@pytest.fixture
def client(pipeline):
    pytest.importorskip("flask")
    app = create_render_app(pipeline)
    app.testing = True
    return app.test_client()


def test_query_render(client):
    resp = client.get("/qr.png", query_string={"data": URL, "size": 300, "style": "dots", "fg": "#112233"})
    assert resp.status_code == 200
    assert resp.mimetype == "image/png"
    assert resp.headers["X-QR-Strategy"] == "styled"
    assert resp.headers["X-QR-Logo"] == "0"
    assert Image.open(io.BytesIO(resp.data)).size == (300, 300)


def test_download_header(client):
    resp = client.get("/qr.png", query_string={"data": URL, "size": 256, "download": "menu"})
    assert resp.headers["Content-Disposition"] == 'attachment; filename="menu_256px.png"'
    assert resp.headers["X-QR-Strategy"] == "basic"


def test_json_render_with_record_style(client):
    body = {"payload": URL, "size": 256, "label": "table 4",
            "style": {"styleType": "classy", "cornerRadius": 30, "bgColor": "#fafafa"}}
    resp = client.post("/api/render", json=body)
    assert resp.status_code == 200
    assert 'filename="table_4_256px.png"' in resp.headers["Content-Disposition"]


def test_missing_payload(client):
    resp = client.post("/api/render", json={"size": 256})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Missing 'payload' field"


@pytest.mark.parametrize("query", [
    {"data": "a" * 5000, "ecc": "L"},
    {"data": ""},
    {"data": URL, "size": 0},
])
def test_render_failures_are_client_errors(client, query):
    resp = client.get("/qr.png", query_string=query)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "could not generate QR code"


def test_sizes(client):
    assert client.get("/api/sizes").get_json() == {"sizes": [256, 512, 1024, 1536, 2000]}


class RecordingResolver:
    """Logo resolver that records every reference it is asked to load."""

    def __init__(self, logo):
        self.logo = logo
        self.refs = []

    def __call__(self, ref, timeout_s, max_px):
        self.refs.append(ref)
        return self.logo


@pytest.fixture
def guarded(settings, logo_png):
    pytest.importorskip("flask")
    from qrcraft.logo import decode_logo
    from qrcraft.pipeline import RenderPipeline

    resolver = RecordingResolver(decode_logo(logo_png))
    pipeline = RenderPipeline(settings=settings, logo_resolver=resolver)
    app = create_render_app(pipeline, logo_hosts=("cdn.example.com",))
    app.testing = True
    yield app.test_client(), resolver
    pipeline.close()


def test_filesystem_logo_paths_are_refused(guarded, tmp_path, logo_png):
    client, resolver = guarded
    secret = tmp_path / "secret.png"
    secret.write_bytes(logo_png)
    for ref in (str(secret), "/etc/passwd", "file:///etc/passwd"):
        resp = client.get("/qr.png", query_string={"data": URL, "size": 256, "logo": ref})
        assert resp.status_code == 200
        assert resp.headers["X-QR-Logo"] == "0"
    resp = client.post("/api/render", json={"payload": URL, "size": 256, "style": {"logoUrl": str(secret)}})
    assert resp.headers["X-QR-Logo"] == "0"
    assert resolver.refs == []


def test_logo_urls_limited_to_allowed_hosts(guarded):
    client, resolver = guarded
    resp = client.get("/qr.png", query_string={"data": URL, "size": 512,
                                               "logo": "http://169.254.169.254/latest/logo.png"})
    assert resp.headers["X-QR-Logo"] == "0"
    assert resolver.refs == []

    resp = client.get("/qr.png", query_string={"data": URL, "size": 512,
                                               "logo": "https://CDN.example.com/brand.png"})
    assert resp.headers["X-QR-Logo"] == "1"
    assert resolver.refs == ["https://CDN.example.com/brand.png"]


def test_inline_data_logo_is_accepted(guarded, logo_png):
    client, resolver = guarded
    data_url = "data:image/png;base64," + base64.b64encode(logo_png).decode()
    resp = client.post("/api/render", json={"payload": URL, "size": 512, "style": {"logoUrl": data_url}})
    assert resp.headers["X-QR-Logo"] == "1"
    assert resolver.refs == [data_url]
