"""XSLT transform pipeline: HTML DOM -> generated package parts.

The pipeline runs in one pass and returns an immutable
:class:`TransformResult`; the package assembler consumes it afterwards.

Stage order::

    normalize_html
      -> cleanup                                   (shared cleaned DOM)
           -> harvest_images                       (stamps <img> file names)
           -> numbering          -> word/numbering.xml
           -> relations          -> word/_rels/document.xml.rels
           -> cleanup -> inline_elements -> base | extras
                                 -> word/document.xml body fragment
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union

from lxml import etree

from html2docx.config import DEFAULT_LAYOUT, PackageLayout, Settings
from html2docx.errors import TransformError
from html2docx.images import ImageRecord, harvest_images
from html2docx.normalizer import normalize_html

logger = logging.getLogger(__name__)

# Compiled stylesheets, one cache per thread
_stylesheets = threading.local()

# ---------------------------------------------------------------------------
# WordprocessingML namespaces
# ---------------------------------------------------------------------------

NS = {
    "w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "wp": "http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "pic": "http://schemas.openxmlformats.org/drawingml/2006/picture",
}

_NS_DECL = "".join(f' xmlns:{prefix}="{uri}"' for prefix, uri in NS.items())

CLEANUP = "cleanup"
INLINE_ELEMENTS = "inline_elements"
NUMBERING = "numbering"
RELATIONS = "relations"
BASE_DOCUMENT = "base"
EXTRAS_DOCUMENT = "extras"

_NS_DECLARATION_RE = re.compile(r'\s*xmlns:(\w+)="(.*?)\s*"')
_XML_DECLARATION_RE = re.compile(r"^\s*<\?xml[^>]*\?>")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def document_stylesheet(extras: bool = False) -> str:
    """Name of the main document stylesheet for the *extras* flag."""
    return EXTRAS_DOCUMENT if extras else BASE_DOCUMENT


def strip_namespace_declarations(xml: str) -> str:
    """Remove every ``xmlns:<prefix>="..."`` attribute from *xml*.

    Default namespace declarations (``xmlns="..."``) are kept.
    """
    return _NS_DECLARATION_RE.sub("", xml)


def parse_fragment(fragment: str) -> etree._Element:
    """Parse a generated body fragment and return its root element.

    The fragment is wrapped in an element declaring the WordprocessingML
    prefixes, so output whose namespace declarations were stripped still
    parses.

    Raises:
        etree.XMLSyntaxError: If the fragment is not well-formed.
    """
    fragment = _XML_DECLARATION_RE.sub("", fragment, count=1)
    wrapped = f"<fragment{_NS_DECL}>{fragment}</fragment>"
    wrapper = etree.fromstring(wrapped.encode("utf-8"))
    elements = [child for child in wrapper if isinstance(child.tag, str)]
    if len(elements) == 1:
        return elements[0]
    return wrapper


def _compile(path: str) -> etree.XSLT:
    cache = _stylesheets.__dict__.setdefault("compiled", {})
    if path not in cache:
        logger.info(f"Loading XSLT stylesheet: {path}")
        cache[path] = etree.XSLT(etree.parse(path))
    return cache[path]


def load_stylesheet(name: str, xslt_dir: Union[str, Path]) -> etree.XSLT:
    """Load and compile ``<xslt_dir>/<name>.xslt``.

    Compiled sheets are cached per thread, so worker threads never share an
    ``XSLT`` object.

    Raises:
        TransformError: If the file is missing or is not a valid stylesheet.
    """
    path = Path(xslt_dir) / f"{name}.xslt"
    if not path.is_file():
        raise TransformError(name, f"stylesheet not found: {path}")
    try:
        return _compile(str(path.resolve()))
    except (etree.XMLSyntaxError, etree.XSLTParseError) as exc:
        logger.error(f"Could not compile stylesheet {path}: {exc}")
        raise TransformError(name, str(exc)) from exc


def apply_stylesheet(
    name: str,
    stylesheet: etree.XSLT,
    source: Union[etree._Element, etree._ElementTree],
) -> etree._XSLTResultTree:
    """Apply *stylesheet* to *source*, wrapping failures in TransformError."""
    if isinstance(source, etree._Element):
        source = etree.ElementTree(source)

    logger.debug(f"Applying transform: {name}")
    try:
        result = stylesheet(source)
    except etree.XSLTApplyError as exc:
        logger.error(f"XSLT transformation '{name}' failed: {exc}")
        logger.error(f"Error log: {stylesheet.error_log}")
        raise TransformError(name, str(exc)) from exc

    if stylesheet.error_log:
        logger.warning(f"XSLT transformation '{name}' completed with warnings:")
        for entry in stylesheet.error_log:
            logger.warning(f"  {entry}")

    if result.getroot() is None:
        raise TransformError(name, "stylesheet produced no output")
    return result


# ---------------------------------------------------------------------------
# Pipeline result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransformResult:
    """Generated parts of one conversion.

    Attributes:
        overrides: Read-only map of package member path -> generated XML.
            The document body entry holds a fragment to be merged, every
            other entry replaces the template member outright.
        images: Harvested images in document order.
        document_path: Key of the body fragment in *overrides*.
    """

    overrides: Mapping[str, str] = field(default_factory=dict)
    images: tuple[ImageRecord, ...] = ()
    document_path: str = DEFAULT_LAYOUT.document

    def __post_init__(self) -> None:
        if not isinstance(self.overrides, MappingProxyType):
            object.__setattr__(self, "overrides", MappingProxyType(dict(self.overrides)))
        object.__setattr__(self, "images", tuple(self.images))

    @property
    def body(self) -> Optional[str]:
        return self.overrides.get(self.document_path)


# ---------------------------------------------------------------------------
# TransformPipeline
# ---------------------------------------------------------------------------

class TransformPipeline:
    """Run the stylesheet chain over an HTML fragment.

    Usage::

        pipeline = TransformPipeline()
        result = pipeline.run("<p>Hello</p>", extras=True)
        result.overrides["word/numbering.xml"]
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        layout: PackageLayout = DEFAULT_LAYOUT,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.layout = layout

    def _apply(self, name: str, source) -> etree._XSLTResultTree:
        stylesheet = load_stylesheet(name, self.settings.xslt_dir)
        return apply_stylesheet(name, stylesheet, source)

    def _serialize(self, name: str, result: etree._XSLTResultTree) -> str:
        content = str(result)
        try:
            etree.fromstring(content.encode("utf-8"))
        except (etree.XMLSyntaxError, ValueError) as exc:
            raise TransformError(name, f"output is not well-formed XML: {exc}") from exc
        return content

    def clean(self, html) -> etree._XSLTResultTree:
        """Normalize *html* and apply the cleanup stylesheet."""
        return self._apply(CLEANUP, normalize_html(html))

    def numbering(self, cleaned) -> str:
        return self._serialize(NUMBERING, self._apply(NUMBERING, cleaned))

    def relations(self, cleaned) -> str:
        content = self._serialize(RELATIONS, self._apply(RELATIONS, cleaned))
        return strip_namespace_declarations(content)

    def body(self, cleaned, extras: bool = False) -> str:
        """Derive the ``<w:body>`` fragment from the cleaned DOM.

        With *extras* the fragment's namespace declarations are stripped, as
        for the relations part.
        """
        source = self._apply(CLEANUP, cleaned)
        source = self._apply(INLINE_ELEMENTS, source)
        name = document_stylesheet(extras)
        content = str(self._apply(name, source))
        try:
            parse_fragment(content)
        except etree.XMLSyntaxError as exc:
            raise TransformError(name, f"output is not well-formed XML: {exc}") from exc
        if extras:
            content = strip_namespace_declarations(content)
        return content

    def run(self, html, extras: bool = False) -> TransformResult:
        """Transform *html* into the generated parts of a package.

        Args:
            html: HTML markup; ``None`` or empty means an empty body.
            extras: Use the extras document stylesheet.

        Returns:
            The generated parts and harvested images.

        Raises:
            TransformError: If any stylesheet fails.
        """
        logger.info(f"Transforming HTML (extras={extras})")
        cleaned = self.clean(html)
        images = harvest_images(cleaned)

        overrides = {
            self.layout.numbering: self.numbering(cleaned),
            self.layout.relations: self.relations(cleaned),
            self.layout.document: self.body(cleaned, extras),
        }
        logger.info(f"Generated {len(overrides)} parts, {len(images)} images")
        return TransformResult(
            overrides=overrides,
            images=images,
            document_path=self.layout.document,
        )
