"""
Image Resolver
==============
Acquires the bytes behind an image reference and sizes it for display.

Reference forms:
    - data: URIs (decoded in-process)
    - http(s):// URLs (fetched with requests)
    - anything else is a local file path, relative to a base directory
      and never outside it

Natural dimensions are probed by decoding the image with PyMuPDF.
This is the only component of the compiler that performs I/O, and it
never raises to its caller: every failure resolves to None.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
from pathlib import Path
from typing import Optional
from urllib.parse import unquote_to_bytes

import fitz  # PyMuPDF
import requests

from .models import ResolvedImage

logger = logging.getLogger(__name__)

MAX_DISPLAY_WIDTH = 600
FALLBACK_SIZE = (600, 400)
DEFAULT_TIMEOUT = 15
USER_AGENT = "markdocx/1.0"


def compute_display_size(
    width: int, height: int, max_width: int = MAX_DISPLAY_WIDTH
) -> tuple[int, int]:
    """Scale down to max_width preserving aspect ratio; never scale up."""
    if width > max_width:
        ratio = max_width / width
        return max_width, max(1, round(height * ratio))
    return width, height


def probe_dimensions(data: bytes) -> tuple[int, int]:
    """
    Decode the image to read its pixel size.
    Returns FALLBACK_SIZE if the bytes cannot be decoded.
    """
    try:
        pix = fitz.Pixmap(data)
        width, height = pix.width, pix.height
    except Exception as e:
        logger.debug(f"Image probe failed ({e}); using fallback size")
        return FALLBACK_SIZE

    if width < 1 or height < 1:
        return FALLBACK_SIZE
    return width, height


class ImageResolver:
    """
    Resolves image references into ResolvedImage objects.

    Resolution is synchronous: the scanner waits on each call, so images
    are resolved strictly in document order.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_width: int = MAX_DISPLAY_WIDTH,
        allow_remote: bool = True,
        base_dir: Optional[str] = None,
        allow_local: bool = True,
    ):
        self.timeout = timeout
        self.max_width = max_width
        self.allow_remote = allow_remote
        self.base_dir = Path(base_dir) if base_dir else None
        self.allow_local = allow_local

    def resolve(self, reference: str) -> Optional[ResolvedImage]:
        """Fetch, probe and size one image. Returns None on any failure."""
        reference = (reference or "").strip()
        if not reference:
            return None

        if reference.startswith("data:"):
            fetched = self._decode_data_uri(reference)
        elif reference.lower().startswith(("http://", "https://")):
            fetched = self._fetch_remote(reference)
        else:
            fetched = self._read_local(reference)

        if fetched is None:
            return None

        data, content_type = fetched
        if not data:
            logger.warning(f"Image reference resolved to no data: {_short(reference)}")
            return None

        natural_width, natural_height = probe_dimensions(data)
        width, height = compute_display_size(
            natural_width, natural_height, self.max_width
        )

        logger.debug(
            f"Resolved image {_short(reference)}: "
            f"{natural_width}x{natural_height} -> {width}x{height}"
        )

        return ResolvedImage(
            data=data,
            natural_width=natural_width,
            natural_height=natural_height,
            width=width,
            height=height,
            content_type=content_type,
        )

    # ─── Reference Forms ─────────────────────────────────────────────────

    def _decode_data_uri(self, uri: str) -> Optional[tuple[bytes, Optional[str]]]:
        header, sep, payload = uri.partition(",")
        if not sep:
            logger.warning("Malformed data URI (no payload)")
            return None

        params = header[len("data:"):].split(";")
        content_type = params[0] or None

        try:
            if "base64" in params[1:]:
                data = base64.b64decode(payload, validate=False)
            else:
                data = unquote_to_bytes(payload)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Failed to decode data URI: {e}")
            return None

        return data, content_type

    def _fetch_remote(self, url: str) -> Optional[tuple[bytes, Optional[str]]]:
        if not self.allow_remote:
            logger.warning(f"Remote images disabled, skipping: {url}")
            return None

        try:
            resp = requests.get(
                url,
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Failed to fetch image {url}: {e}")
            return None

        if not resp.ok:
            logger.warning(f"Failed to fetch image {url}: HTTP {resp.status_code}")
            return None

        content_type = resp.headers.get("Content-Type", "").split(";")[0] or None
        return resp.content, content_type

    def _read_local(self, reference: str) -> Optional[tuple[bytes, Optional[str]]]:
        if not self.allow_local:
            logger.warning(f"Local images disabled, skipping: {_short(reference)}")
            return None

        # Local reads stay inside base_dir (or the working directory)
        root = self.base_dir if self.base_dir is not None else Path.cwd()
        try:
            root = root.resolve()
            path = (root / reference).resolve()
        except (OSError, ValueError) as e:
            logger.warning(f"Invalid image path {_short(reference)}: {e}")
            return None

        if not path.is_relative_to(root):
            logger.warning(f"Image path outside {root}, skipping: {_short(reference)}")
            return None

        try:
            data = path.read_bytes()
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read image {path}: {e}")
            return None

        content_type, _ = mimetypes.guess_type(path.name)
        return data, content_type


def _short(reference: str, limit: int = 80) -> str:
    """Shorten long references (data URIs) for log lines."""
    if len(reference) <= limit:
        return reference
    return reference[:limit] + "..."
