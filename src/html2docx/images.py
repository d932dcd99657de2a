"""Image harvesting, fetching and content-type registration.

Images are numbered by their position in the cleaned document, never by
their content: the n-th ``<img>`` always becomes ``word/media/image<n>.<ext>``.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import unquote, unquote_to_bytes, urlparse

import httpx
from lxml import etree

from html2docx.errors import ImageFetchError

logger = logging.getLogger(__name__)

FILENAME_ATTRIBUTE = "data-docx-filename"

# Seconds before a remote image request gives up
DEFAULT_TIMEOUT = 30.0

CONTENT_TYPES_NS = "http://schemas.openxmlformats.org/package/2006/content-types"


@dataclass(frozen=True)
class ImageRecord:
    """An ``<img>`` to embed in the package."""

    index: int
    filename: str
    extension: str
    url: str


# ---------------------------------------------------------------------------
# Harvesting
# ---------------------------------------------------------------------------

def image_extension(src: str, filename: Optional[str] = None) -> str:
    """Return the lower-cased extension for an image.

    An explicit *filename* wins; otherwise the last path segment of *src*
    is used. ``data:`` URIs take their extension from the media type.
    """
    if filename:
        name = filename
    elif src.startswith("data:"):
        media_type = src[5:].split(";", 1)[0].split(",", 1)[0]
        subtype = media_type.rpartition("/")[2]
        return subtype.split("+", 1)[0].lower()
    else:
        name = urlparse(src).path.rsplit("/", 1)[-1] or src.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def harvest_images(tree) -> tuple[ImageRecord, ...]:
    """Collect every ``<img>`` of *tree* in document order.

    Each visited element is stamped with its assigned file name in the
    ``data-docx-filename`` attribute, which the relations and document
    stylesheets read so that relationship targets always match the media
    entries written by the assembler.
    """
    root = tree.getroot() if hasattr(tree, "getroot") else tree
    records: list[ImageRecord] = []
    for index, img in enumerate(root.iter("img"), start=1):
        src = img.get("src", "")
        ext = image_extension(src, img.get("data-filename"))
        filename = f"image{index}.{ext}" if ext else f"image{index}"
        img.set(FILENAME_ATTRIBUTE, filename)
        records.append(ImageRecord(index=index, filename=filename, extension=ext, url=src))
        logger.debug(f"Harvested image {filename} from {src[:80]}")
    return tuple(records)


# ---------------------------------------------------------------------------
# [Content_Types].xml
# ---------------------------------------------------------------------------

def content_type_from_extension(ext: str) -> str:
    """MIME type for an image extension (``jpg`` is registered as jpeg)."""
    return f"image/{'jpeg' if ext == 'jpg' else ext}"


def inject_image_content_types(source: bytes, images: Iterable[ImageRecord]) -> bytes:
    """Declare a ``Default`` content type for every image extension missing one.

    Extensions already declared in the manifest are left as they are.
    """
    root = etree.fromstring(source)
    ns = root.nsmap.get(None, CONTENT_TYPES_NS)
    default_tag = f"{{{ns}}}Default"

    existing = {
        (node.get("Extension") or "").lower()
        for node in root.iter(default_tag)
    }
    missing: list[str] = []
    for image in images:
        ext = image.extension
        if ext and ext not in existing and ext not in missing:
            missing.append(ext)

    for ext in missing:
        logger.debug(f"Registering content type for .{ext}")
        etree.SubElement(
            root,
            default_tag,
            Extension=ext,
            ContentType=content_type_from_extension(ext),
        )
    return etree.tostring(
        root.getroottree(),
        xml_declaration=True,
        encoding="UTF-8",
        standalone=True,
    )


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def _decode_data_uri(url: str) -> bytes:
    header, sep, payload = url.partition(",")
    if not sep:
        raise ValueError("malformed data URI")
    if header.endswith(";base64"):
        return base64.b64decode(payload, validate=False)
    return unquote_to_bytes(payload)


class ImageFetcher:
    """Fetch image bytes one at a time, without retries.

    Supports ``http(s)://`` URLs, ``data:`` URIs, ``file://`` URLs and
    plain local paths. With ``allow_local=False`` only remote URLs and
    ``data:`` URIs are accepted; the HTTP service runs that way. Any
    failure is raised as :class:`ImageFetchError`.

    Usage::

        with ImageFetcher() as fetcher:
            data = fetcher.fetch("https://example.com/logo.png")
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        allow_local: bool = True,
    ) -> None:
        self.allow_local = allow_local
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=timeout)

    def __enter__(self) -> ImageFetcher:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __call__(self, url: str) -> bytes:
        return self.fetch(url)

    def fetch(self, url: str) -> bytes:
        if not url:
            raise ImageFetchError(url, "image has no source")

        if url.startswith("data:"):
            try:
                return _decode_data_uri(url)
            except (ValueError, binascii.Error) as exc:
                raise ImageFetchError(url[:64], str(exc)) from exc

        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            logger.debug(f"Fetching {url}")
            try:
                response = self._client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise ImageFetchError(url, str(exc)) from exc
            return response.content

        if not self.allow_local:
            raise ImageFetchError(url, "local image sources are not allowed")

        path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(url)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ImageFetchError(url, str(exc)) from exc
