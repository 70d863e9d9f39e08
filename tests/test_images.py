import asyncio
import base64
import io
from pathlib import Path

import pytest

import html2print.core as core
import html2print.images as images
from html2print.fragments import Image, Paragraph
from html2print.images import ImageResolver, fetch_image_bytes, is_data_uri, rasterize_to_png
from html2print.errors import ImageResolutionError


def _png_bytes(width: int, height: int) -> bytes:
    from PIL import Image as PILImage

    buffer = io.BytesIO()
    PILImage.new("RGB", (width, height), color=(200, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


def _write_test_png(path: Path, *, width: int, height: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(_png_bytes(width, height))


def _data_uri(width: int, height: int) -> str:
    return "data:image/png;base64," + base64.b64encode(_png_bytes(width, height)).decode("ascii")


def _extract(html: str, root_id: str = "root", **kwargs):
    soup = core.parse_html(html)
    return asyncio.run(core.extract_content(core.find_root(soup, root_id), **kwargs))


def test_data_uri_is_passed_through_unchanged():
    uri = _data_uri(10, 10)
    calls = []

    def fetcher(src):
        calls.append(src)
        return b""

    fragments = _extract(f'<div id="root"><img src="{uri}"></div>', resolver=ImageResolver(fetcher=fetcher))

    assert fragments == [Image(payload=uri, width=10.0, height=10.0)]
    assert calls == []


def test_relative_reference_is_embedded_as_png(tmp_path):
    _write_test_png(tmp_path / "assets" / "chart.png", width=20, height=10)
    config = core.ExtractionConfig(image_base_dir=str(tmp_path))

    fragments = _extract('<div id="root"><img src="assets/chart.png" alt="chart"></div>', config=config)

    assert len(fragments) == 1
    image = fragments[0]
    assert image.payload.startswith("data:image/png;base64,")
    assert (image.width, image.height) == (20.0, 10.0)

    from PIL import Image as PILImage

    raw = base64.b64decode(image.payload.split(",", 1)[1])
    with PILImage.open(io.BytesIO(raw)) as decoded:
        assert decoded.size == (20, 10)
        assert decoded.mode == "RGBA"


def test_unreachable_image_is_dropped_and_extraction_continues(tmp_path):
    config = core.ExtractionConfig(image_base_dir=str(tmp_path))

    fragments = _extract('<div id="root"><p>Before</p><img src="missing.png"><p>After</p></div>', config=config)

    assert fragments == [Paragraph(text="Before"), Paragraph(text="After")]


def test_undecodable_image_is_dropped(tmp_path):
    (tmp_path / "broken.png").write_bytes(b"not an image")
    config = core.ExtractionConfig(image_base_dir=str(tmp_path))

    assert _extract('<div id="root"><img src="broken.png"></div>', config=config) == []


def test_oversized_image_is_scaled_to_content_width():
    uri = _data_uri(4, 2)
    config = core.ExtractionConfig()

    fragments = _extract(f'<div id="root"><img src="{uri}" width="1030" height="515"></div>', config=config)

    assert fragments[0].width == pytest.approx(config.content_width)
    assert fragments[0].height == pytest.approx(257.64)


def test_single_dimension_attribute_keeps_aspect_ratio():
    uri = _data_uri(40, 20)

    fragments = _extract(f'<div id="root"><img src="{uri}" width="100px"></div>')

    assert (fragments[0].width, fragments[0].height) == (100.0, 50.0)


def test_unmeasurable_data_uri_fits_content_width():
    uri = "data:image/svg+xml;utf8,abc"
    config = core.ExtractionConfig()

    fragments = _extract(f'<div id="root"><img src="{uri}"></div>', config=config)

    assert fragments[0].payload == uri
    assert fragments[0].width == pytest.approx(config.content_width)
    assert fragments[0].height is None


def test_image_inside_paragraph_follows_the_text():
    uri = _data_uri(8, 8)

    fragments = _extract(f'<div id="root"><p>Figure 1 <img src="{uri}"></p></div>')

    assert fragments == [Paragraph(text="Figure 1"), Image(payload=uri, width=8.0, height=8.0)]


def test_resolver_fetches_each_reference_once():
    calls = []

    def fetcher(src):
        calls.append(src)
        return _png_bytes(3, 3)

    resolver = ImageResolver(fetcher=fetcher)
    first = asyncio.run(resolver.resolve("https://example.com/logo.png"))
    second = asyncio.run(resolver.resolve("https://example.com/logo.png"))

    assert first == second
    assert first.width == 3
    assert calls == ["https://example.com/logo.png"]


def test_resolver_reports_fetch_failures_as_none():
    def fetcher(src):
        raise OSError("connection refused")

    assert asyncio.run(ImageResolver(fetcher=fetcher).resolve("https://example.com/x.png")) is None


def test_fetch_rejects_unknown_schemes():
    with pytest.raises(ImageResolutionError):
        fetch_image_bytes("ftp://example.com/a.png")


class _FakeResponse:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def read(self) -> bytes:
        return self._payload


def test_fetch_protocol_relative_reference_uses_https(monkeypatch, tmp_path):
    requested = []

    def fake_urlopen(request):
        requested.append(request.full_url)
        return _FakeResponse(b"remote-bytes")

    monkeypatch.setattr(images.urllib.request, "urlopen", fake_urlopen)

    assert fetch_image_bytes("//cdn.example.com/logo.png", base_dir=tmp_path) == b"remote-bytes"
    assert requested == ["https://cdn.example.com/logo.png"]


def test_fetch_rejects_file_urls_on_other_hosts():
    with pytest.raises(ImageResolutionError):
        fetch_image_bytes("file://fileserver/share/logo.png")


def test_fetch_reads_file_urls(tmp_path):
    path = tmp_path / "logo.png"
    _write_test_png(path, width=2, height=2)

    assert fetch_image_bytes(path.as_uri()) == path.read_bytes()


def test_rasterize_rejects_garbage():
    with pytest.raises(ImageResolutionError):
        rasterize_to_png(b"\x00\x01garbage")


def test_is_data_uri():
    assert is_data_uri("DATA:image/png;base64,AAAA")
    assert not is_data_uri("assets/logo.png")
