"""Shared fixtures: a small deterministic template package and a fake fetcher."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest
from lxml import etree

from html2docx.config import Settings
from html2docx.errors import ImageFetchError

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
NSMAP = {"w": W_NS, "r": R_NS}

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-png"

CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    '</Types>'
)

DOCUMENT_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    f'<w:document xmlns:w="{W_NS}" xmlns:r="{R_NS}">'
    '<w:background w:color="FFFFFF"/>'
    '<w:body>'
    '<w:p><w:r><w:t>Template paragraph one</w:t></w:r></w:p>'
    '<w:p><w:r><w:t>Template paragraph two</w:t></w:r></w:p>'
    '<w:sectPr>'
    '<w:headerReference w:type="default" r:id="rId3"/>'
    '<w:footerReference w:type="default" r:id="rId4"/>'
    '<w:pgSz w:w="12240" w:h="15840"/>'
    '<w:pgMar w:top="1440" w:right="1440" w:bottom="1440" w:left="1440"/>'
    '</w:sectPr>'
    '</w:body>'
    '</w:document>'
)

RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId3" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/header" '
    'Target="header1.xml"/>'
    '</Relationships>'
)

NUMBERING_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    f'<w:numbering xmlns:w="{W_NS}"><!-- template numbering --></w:numbering>'
)

STYLES_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    f'<w:styles xmlns:w="{W_NS}"><w:style w:type="paragraph" w:styleId="Normal"/></w:styles>'
)

HEADER_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    f'<w:hdr xmlns:w="{W_NS}"><w:p><w:r><w:t>{{{{title}}}}</w:t></w:r>'
    '<w:r><w:t>{{subtitle}}</w:t></w:r></w:p></w:hdr>'
)

FOOTER_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    f'<w:ftr xmlns:w="{W_NS}"><w:p><w:r><w:t>Page {{{{page}}}}</w:t></w:r></w:p></w:ftr>'
)

TEMPLATE_ENTRIES = {
    "[Content_Types].xml": CONTENT_TYPES_XML,
    "word/document.xml": DOCUMENT_XML,
    "word/_rels/document.xml.rels": RELS_XML,
    "word/numbering.xml": NUMBERING_XML,
    "word/styles.xml": STYLES_XML,
    "word/header1.xml": HEADER_XML,
    "word/footer1.xml": FOOTER_XML,
    "docProps/custom.bin": b"\x00\x01\x02binary",
}


def build_template(path: Path, entries: dict | None = None) -> Path:
    """Write a template package with fixed timestamps to *path*."""
    entries = TEMPLATE_ENTRIES if entries is None else entries
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            info = zipfile.ZipInfo(name, date_time=(2024, 1, 1, 0, 0, 0))
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, content)
    return path


def read_docx(data: bytes) -> dict[str, bytes]:
    """All members of a package, keyed by name, in archive order."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def texts(xml: bytes) -> list[str]:
    """The w:t texts of a WordprocessingML part, in document order."""
    root = etree.fromstring(xml)
    return [t.text or "" for t in root.iterfind(".//w:t", NSMAP)]


class FakeFetcher:
    """Image fetcher returning canned bytes and recording every URL."""

    def __init__(self, payloads: dict | None = None, fail: tuple = ()) -> None:
        self.payloads = payloads or {}
        self.fail = set(fail)
        self.calls: list[str] = []

    def __call__(self, url: str) -> bytes:
        self.calls.append(url)
        if url in self.fail:
            raise ImageFetchError(url, "connection refused")
        return self.payloads.get(url, PNG_BYTES)


@pytest.fixture
def template_path(tmp_path):
    return build_template(tmp_path / "template.docx")


@pytest.fixture
def settings(tmp_path):
    custom = tmp_path / "custom"
    custom.mkdir()
    return Settings(custom_templates_dir=custom)


@pytest.fixture
def fetcher():
    return FakeFetcher()
