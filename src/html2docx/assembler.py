"""Package assembler: template .docx + generated parts -> new .docx bytes.

Every member of the template is written exactly once, in template order,
under one of these policies (see :meth:`PackageLayout.policies`):

* ``merge`` -- word/document.xml: the generated body content replaces the
  template's body content in front of ``w:sectPr``; every other byte of the
  part is kept.
* ``replace`` -- numbering and relationships: generated XML is written
  verbatim.
* ``header`` / ``footer`` -- ``{{name}}`` placeholders are filled in.
* ``content_types`` -- image extensions are registered when images exist.
* ``copy`` -- every other member is copied unchanged.

Harvested images are appended under ``word/media/`` afterwards. The output
is built in memory and only returned once everything has been written.
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, Union

from lxml import etree

from html2docx.config import (
    DEFAULT_LAYOUT,
    POLICY_COPY,
    POLICY_MERGE,
    POLICY_REPLACE,
    PackageLayout,
)
from html2docx.errors import Html2DocxError, TemplateNotFoundError
from html2docx.images import ImageFetcher, ImageRecord, inject_image_content_types
from html2docx.placeholders import replace_placeholders
from html2docx.transforms import NS, TransformResult, parse_fragment

logger = logging.getLogger(__name__)

_W = f"{{{NS['w']}}}"
_R_ID = f"{{{NS['r']}}}id"

# Whitespace kept around the replaced body span
_WHITESPACE = b" \t\r\n"

# Date stamp for members that have no template counterpart
_MEDIA_DATE_TIME = (1980, 1, 1, 0, 0, 0)

Fetcher = Callable[[str], bytes]


# ---------------------------------------------------------------------------
# Structural merge
# ---------------------------------------------------------------------------

def _qname(element: etree._Element) -> bytes:
    """The tag of *element* as written in the source, e.g. ``b"w:body"``."""
    local = etree.QName(element).localname
    name = f"{element.prefix}:{local}" if element.prefix else local
    return name.encode("utf-8")


def _start_tag_offset(source: bytes, element: etree._Element, scope: etree._Element, pos: int) -> int:
    """Byte offset of the start tag of *element* in *source*.

    Elements of *scope* written with the same tag are counted in document
    order, so nested look-alikes in front of *element* are skipped.
    """
    same_tag = [e for e in scope.iter(element.tag) if e.prefix == element.prefix]
    occurrence = next(i for i, e in enumerate(same_tag) if e is element)
    pattern = re.compile(rb"<" + re.escape(_qname(element)) + rb"[\s/>]")
    for index, match in enumerate(pattern.finditer(source, pos)):
        if index == occurrence:
            return match.start()
    raise Html2DocxError(f"could not locate <{_qname(element).decode()}> in the template part")


def _rewrite_references(xml: bytes, sect_pr: etree._Element, layout: PackageLayout) -> bytes:
    """Point the header/footer references of *sect_pr* at the fixed ids.

    Only the ``r:id`` attribute values change; every other byte is kept.
    """
    targets = (
        (f"{_W}headerReference", layout.header_rel_id),
        (f"{_W}footerReference", layout.footer_rel_id),
    )
    for tag, rel_id in targets:
        spellings = set()
        for ref in sect_pr.iter(tag):
            r_prefix = next(
                (prefix for prefix, uri in ref.nsmap.items() if prefix and uri == NS["r"]),
                None,
            )
            if r_prefix is not None and ref.get(_R_ID) is not None:
                spellings.add((_qname(ref), r_prefix.encode("utf-8")))
        for element_name, r_prefix in spellings:
            pattern = re.compile(
                rb"(<" + re.escape(element_name) + rb"\b[^>]*?\s"
                + re.escape(r_prefix) + rb":id\s*=\s*)([\"'])[^\"']*\2"
            )
            value = rel_id.encode("utf-8")
            xml = pattern.sub(lambda m: m.group(1) + m.group(2) + value + m.group(2), xml)
    return xml


def merge_document_body(
    source: bytes,
    fragment: str,
    layout: PackageLayout = DEFAULT_LAYOUT,
) -> bytes:
    """Splice the children of *fragment*'s root into ``w:body`` of *source*.

    lxml only locates ``w:body`` and its direct ``w:sectPr``; the splice
    works on the raw bytes. Everything up to the end of the ``<w:body>``
    start tag and everything from the body-level ``<w:sectPr`` on is kept
    byte for byte, as is whitespace directly around the replaced span. The
    template's body children in between are replaced by the generated ones.
    Inside the kept ``w:sectPr`` the header and footer reference ids are
    pointed at the fixed relationship ids of *layout*.
    """
    root = etree.fromstring(source)
    body = root.find(f"{_W}body")
    if body is None:
        raise Html2DocxError(f"template {layout.document} has no w:body element")
    sect_pr = body.find(f"{_W}sectPr")
    encoding = root.getroottree().docinfo.encoding or "UTF-8"

    generated = list(parse_fragment(fragment))
    content = b"".join(
        etree.tostring(child, encoding=encoding, xml_declaration=False, with_tail=False)
        for child in generated
    )

    body_name = _qname(body)
    open_tag = re.compile(rb"<" + re.escape(body_name) + rb"(?:\s[^>]*)?/?>").search(source)
    if open_tag is None:
        raise Html2DocxError(f"could not locate <{body_name.decode()}> in {layout.document}")

    if open_tag.group().endswith(b"/>"):
        head = source[: open_tag.start()] + open_tag.group()[:-2].rstrip() + b">"
        tail = b"</" + body_name + b">" + source[open_tag.end():]
        logger.debug(f"Merged {len(generated)} body elements into empty {layout.document} body")
        return head + content + tail

    start = open_tag.end()
    if sect_pr is not None:
        end = _start_tag_offset(source, sect_pr, body, start)
    else:
        end = source.rindex(b"</" + body_name)
    while start < end and source[start] in _WHITESPACE:
        start += 1
    while end > start and source[end - 1] in _WHITESPACE:
        end -= 1

    tail = source[end:]
    if sect_pr is not None:
        tail = _rewrite_references(tail, sect_pr, layout)

    logger.debug(f"Merged {len(generated)} body elements into {layout.document}")
    return source[:start] + content + tail


# ---------------------------------------------------------------------------
# PackageAssembler
# ---------------------------------------------------------------------------

@dataclass
class _Assembly:
    """Inputs of a single :meth:`PackageAssembler.assemble` call."""

    result: TransformResult
    header: Mapping[str, object] = field(default_factory=dict)
    footer: Mapping[str, object] = field(default_factory=dict)


class PackageAssembler:
    """Recompose a template package with generated parts.

    Usage::

        assembler = PackageAssembler("templates/default.docx")
        docx_bytes = assembler.assemble(result, header={"title": "Report"})

    Args:
        template_path: Path of the template package.
        layout: Fixed member paths and relationship ids.
        fetcher: Callable returning the bytes behind an image URL. When
            omitted an :class:`ImageFetcher` is opened for the images of
            each call.
    """

    def __init__(
        self,
        template_path: Union[str, Path],
        layout: PackageLayout = DEFAULT_LAYOUT,
        fetcher: Optional[Fetcher] = None,
    ) -> None:
        self.template_path = Path(template_path)
        self.layout = layout
        self.fetcher = fetcher
        self._policies = layout.policies()

    # ======================================================================
    # Public API
    # ======================================================================

    def assemble(
        self,
        result: TransformResult,
        header: Optional[Mapping[str, object]] = None,
        footer: Optional[Mapping[str, object]] = None,
    ) -> bytes:
        """Return the new package as bytes.

        Raises:
            TemplateNotFoundError: If the template is missing, unreadable or
                not a zip package.
            ImageFetchError: If any image cannot be fetched; nothing is
                returned in that case.
        """
        assembly = _Assembly(result, header or {}, footer or {})
        buf = io.BytesIO()

        logger.debug(f"Opening template {self.template_path}")
        try:
            template_zip = zipfile.ZipFile(self.template_path)
        except FileNotFoundError as exc:
            raise TemplateNotFoundError(str(self.template_path)) from exc
        except (OSError, zipfile.BadZipFile) as exc:
            raise TemplateNotFoundError(str(self.template_path), reason=str(exc)) from exc

        with template_zip, zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as out:
            names = set()
            for info in template_zip.infolist():
                names.add(info.filename)
                policy = self.policy_for(info.filename, result)
                logger.debug(f"{info.filename}: {policy}")
                handler = getattr(self, f"_write_{policy}")
                data = handler(info.filename, template_zip.read(info), assembly)
                out.writestr(self._entry(info.filename, info), data)

            if result.images:
                self._append_images(out, result.images, names)

        return buf.getvalue()

    def policy_for(self, name: str, result: TransformResult) -> str:
        """Policy applied to template member *name*."""
        policy = self._policies.get(name, POLICY_COPY)
        if policy in (POLICY_MERGE, POLICY_REPLACE) and name not in result.overrides:
            return POLICY_COPY
        if policy == POLICY_COPY and name in result.overrides:
            return POLICY_REPLACE
        return policy

    # ======================================================================
    # Per-policy writers
    # ======================================================================

    def _write_merge(self, name: str, raw: bytes, assembly: _Assembly) -> bytes:
        return merge_document_body(raw, assembly.result.overrides[name], self.layout)

    def _write_replace(self, name: str, raw: bytes, assembly: _Assembly) -> bytes:
        return assembly.result.overrides[name].encode("utf-8")

    def _write_header(self, name: str, raw: bytes, assembly: _Assembly) -> bytes:
        return replace_placeholders(raw.decode("utf-8"), assembly.header).encode("utf-8")

    def _write_footer(self, name: str, raw: bytes, assembly: _Assembly) -> bytes:
        return replace_placeholders(raw.decode("utf-8"), assembly.footer).encode("utf-8")

    def _write_content_types(self, name: str, raw: bytes, assembly: _Assembly) -> bytes:
        if not assembly.result.images:
            return raw
        return inject_image_content_types(raw, assembly.result.images)

    def _write_copy(self, name: str, raw: bytes, assembly: _Assembly) -> bytes:
        return raw

    # ======================================================================
    # Media
    # ======================================================================

    def _append_images(
        self,
        out: zipfile.ZipFile,
        images: tuple[ImageRecord, ...],
        existing: set[str],
    ) -> None:
        if self.fetcher is not None:
            self._write_images(out, images, existing, self.fetcher)
            return
        with ImageFetcher() as fetcher:
            self._write_images(out, images, existing, fetcher)

    def _write_images(
        self,
        out: zipfile.ZipFile,
        images: tuple[ImageRecord, ...],
        existing: set[str],
        fetch: Fetcher,
    ) -> None:
        for image in images:
            path = self.layout.media_path(image.filename)
            if path in existing:
                logger.warning(
                    f"Template already contains {path}; the output package will hold "
                    f"a duplicate {path} member"
                )
            data = fetch(image.url)
            out.writestr(self._entry(path), data)
            logger.debug(f"Embedded {path} ({len(data)} bytes)")

    @staticmethod
    def _entry(name: str, template: Optional[zipfile.ZipInfo] = None) -> zipfile.ZipInfo:
        """ZipInfo for an output member; timestamps come from the template."""
        date_time = template.date_time if template is not None else _MEDIA_DATE_TIME
        info = zipfile.ZipInfo(name, date_time=date_time)
        info.compress_type = zipfile.ZIP_DEFLATED
        if template is not None:
            info.external_attr = template.external_attr
        else:
            info.external_attr = 0o644 << 16
        return info
