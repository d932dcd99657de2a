"""HTML normalisation: raw markup -> DOM tree for the cleanup stylesheet."""

from __future__ import annotations

import logging
import re
from typing import Optional, Union

import lxml.html
from lxml import etree

logger = logging.getLogger(__name__)

EMPTY_DOCUMENT = "<body></body>"

_INTER_TAG_WS_RE = re.compile(r">\s+<")


def normalize_html(html: Optional[Union[str, bytes]]) -> lxml.html.HtmlElement:
    """Parse *html* into a DOM rooted at ``<html>``.

    ``None`` and empty input become an empty ``<body>``. Whitespace between
    tags is collapsed before parsing. The libxml2 HTML parser recovers from
    malformed markup, so this never raises on bad input; markup with no
    element content at all (a lone comment, say) is treated as empty.
    """
    if isinstance(html, bytes):
        html = html.decode("utf-8", errors="replace")
    if not html or not html.strip():
        html = EMPTY_DOCUMENT
    html = _INTER_TAG_WS_RE.sub("><", html)
    try:
        return lxml.html.document_fromstring(html)
    except etree.ParserError:
        logger.debug("HTML input has no content, using an empty body")
        return lxml.html.document_fromstring(EMPTY_DOCUMENT)
