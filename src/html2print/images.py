"""Resolve image references to self-contained PNG data URIs."""

from __future__ import annotations

import asyncio
import base64
import binascii
import functools
import io
import logging
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .errors import ImageResolutionError

LOG = logging.getLogger("html2print.images")

DATA_URI_PREFIX = "data:"
PNG_DATA_URI_PREFIX = "data:image/png;base64,"

Fetcher = Callable[[str], bytes]


@dataclass(frozen=True)
class ResolvedImage:
    payload: str
    width: Optional[int] = None
    height: Optional[int] = None


def is_data_uri(src: str) -> bool:
    return src[: len(DATA_URI_PREFIX)].lower() == DATA_URI_PREFIX


def fetch_image_bytes(src: str, base_dir: Optional[Path] = None) -> bytes:
    parsed = urllib.parse.urlparse(src)
    scheme = parsed.scheme.lower()
    if scheme == "" and parsed.netloc:
        # protocol-relative: //host/path
        src = "https:" + src
        scheme = "https"
    if scheme == "file" and parsed.netloc not in ("", "localhost"):
        raise ImageResolutionError(f"Unsupported remote file reference: {src}")
    if scheme in ("http", "https"):
        request = urllib.request.Request(src, headers={"User-Agent": "html2print"})
        with urllib.request.urlopen(request) as response:
            return response.read()
    if scheme == "file":
        path = Path(urllib.request.url2pathname(parsed.path))
    elif scheme == "":
        path = Path(urllib.parse.unquote(parsed.path))
        if not path.is_absolute() and base_dir is not None:
            path = Path(base_dir) / path
    else:
        raise ImageResolutionError(f"Unsupported image reference scheme: {parsed.scheme}")
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ImageResolutionError(f"Unable to read image {path}: {exc}") from exc


def _load_pillow():
    try:
        from PIL import Image  # type: ignore
    except Exception as exc:
        raise RuntimeError(f"Pillow not available: {exc}") from exc
    return Image


def rasterize_to_png(raw: bytes) -> ResolvedImage:
    Image = _load_pillow()
    try:
        with Image.open(io.BytesIO(raw)) as source:
            source.load()
            width, height = source.size
            if width <= 0 or height <= 0:
                raise ImageResolutionError(f"Image has zero dimension ({width}x{height})")
            surface = Image.new("RGBA", (width, height), (0, 0, 0, 0))
            surface.alpha_composite(source.convert("RGBA"))
    except ImageResolutionError:
        raise
    except Exception as exc:
        raise ImageResolutionError(f"Undecodable image data: {exc}") from exc

    buffer = io.BytesIO()
    surface.save(buffer, format="PNG")
    payload = PNG_DATA_URI_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")
    return ResolvedImage(payload=payload, width=width, height=height)


def measure_data_uri(src: str) -> Tuple[Optional[int], Optional[int]]:
    header, sep, data = src.partition(",")
    if not sep or ";base64" not in header.lower():
        return None, None
    try:
        raw = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError):
        return None, None
    Image = _load_pillow()
    try:
        with Image.open(io.BytesIO(raw)) as probe:
            width, height = probe.size
    except Exception:
        return None, None
    return width, height


class ImageResolver:
    """Turns ``src`` references into embedded payloads.

    Data URIs pass through untouched. Anything else is fetched with the
    injected fetcher, drawn onto an RGBA surface of its natural size and
    re-encoded as PNG. Fetch and decode run in worker threads so the
    resolver can be awaited from the extraction walk. Failures are logged
    and reported as ``None``; the caller omits the image.
    """

    def __init__(self, fetcher: Optional[Fetcher] = None, base_dir: Optional[Path] = None) -> None:
        self._fetcher: Fetcher = fetcher or functools.partial(fetch_image_bytes, base_dir=base_dir)
        self._cache: Dict[str, Optional[ResolvedImage]] = {}

    async def resolve(self, src: str) -> Optional[ResolvedImage]:
        src = (src or "").strip()
        if not src:
            return None
        if is_data_uri(src):
            width, height = measure_data_uri(src)
            return ResolvedImage(payload=src, width=width, height=height)
        if src in self._cache:
            return self._cache[src]

        resolved: Optional[ResolvedImage]
        try:
            raw = await asyncio.to_thread(self._fetcher, src)
            resolved = await asyncio.to_thread(rasterize_to_png, raw)
        except Exception as exc:
            LOG.warning("Image %s skipped: %s", src, exc)
            resolved = None
        else:
            LOG.debug("Image %s embedded (%sx%s)", src, resolved.width, resolved.height)
        self._cache[src] = resolved
        return resolved
