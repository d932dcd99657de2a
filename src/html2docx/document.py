"""High-level HTML-to-DOCX conversion API.

Ties together template lookup, the transform pipeline and the package
assembler into a single public API.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Union

from html2docx.assembler import Fetcher, PackageAssembler
from html2docx.config import DEFAULT_LAYOUT, PackageLayout, Settings
from html2docx.errors import Html2DocxError
from html2docx.templates import resolve_template
from html2docx.transforms import TransformPipeline, TransformResult

logger = logging.getLogger(__name__)

Placeholders = Optional[Mapping[str, object]]


class Document:
    """Convert one HTML fragment into a ``.docx`` built from a template.

    Usage::

        docx_bytes = Document.create("<h1>Hello</h1>", "letterhead",
                                     header={"title": "Hello"})

        # or step by step
        document = Document(resolve_template("letterhead"))
        document.replace_files("<h1>Hello</h1>", extras=True)
        docx_bytes = document.generate(footer={"page": "1"})

    A ``Document`` holds the parts generated for one conversion; create a
    new instance for every conversion.
    """

    def __init__(
        self,
        template_path: Union[str, Path],
        settings: Optional[Settings] = None,
        layout: PackageLayout = DEFAULT_LAYOUT,
        fetcher: Optional[Fetcher] = None,
    ) -> None:
        self.template_path = Path(template_path)
        self.settings = settings or Settings.from_env()
        self.pipeline = TransformPipeline(self.settings, layout)
        self.assembler = PackageAssembler(self.template_path, layout, fetcher)
        self.result: Optional[TransformResult] = None

    # ======================================================================
    # Instance API
    # ======================================================================

    def replace_files(self, html: Optional[str], extras: bool = False) -> TransformResult:
        """Run the stylesheets over *html* and keep the generated parts."""
        self.result = self.pipeline.run(html, extras)
        return self.result

    def generate(self, header: Placeholders = None, footer: Placeholders = None) -> bytes:
        """Assemble the package from the template and the generated parts."""
        if self.result is None:
            raise Html2DocxError("replace_files() must be called before generate()")
        logger.info(f"Assembling package from {self.template_path}")
        return self.assembler.assemble(self.result, header, footer)

    # ======================================================================
    # One-shot API
    # ======================================================================

    @classmethod
    def create(
        cls,
        html: Optional[str],
        template_name: Optional[str] = None,
        extras: bool = False,
        *,
        header: Placeholders = None,
        footer: Placeholders = None,
        settings: Optional[Settings] = None,
        fetcher: Optional[Fetcher] = None,
    ) -> bytes:
        """Convert *html* and return the ``.docx`` file content.

        Args:
            html: HTML fragment; ``None`` or empty produces an empty body.
            template_name: Template to start from; the default template
                when omitted.
            extras: Use the extras document stylesheet.
            header: Values for ``{{name}}`` placeholders in the header.
            footer: Values for ``{{name}}`` placeholders in the footer.
            settings: Stylesheet and template locations.
            fetcher: Replacement image fetcher.

        Returns:
            The complete package as bytes.
        """
        settings = settings or Settings.from_env()
        template_path = resolve_template(template_name, settings)
        document = cls(template_path, settings, fetcher=fetcher)
        document.replace_files(html, extras)
        return document.generate(header=header, footer=footer)

    @classmethod
    def create_and_save(
        cls,
        html: Optional[str],
        file_path: Union[str, Path],
        template_name: Optional[str] = None,
        extras: bool = False,
        *,
        header: Placeholders = None,
        footer: Placeholders = None,
        settings: Optional[Settings] = None,
        fetcher: Optional[Fetcher] = None,
    ) -> Path:
        """Convert *html* and write the ``.docx`` to *file_path*.

        Nothing is written when the conversion fails.
        """
        data = cls.create(
            html,
            template_name,
            extras,
            header=header,
            footer=footer,
            settings=settings,
            fetcher=fetcher,
        )
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(data)
        logger.info(f"Wrote {len(data)} bytes to {file_path}")
        return file_path

    @classmethod
    def create_with_content(
        cls,
        template_name: str,
        html: Optional[str],
        extras: bool = False,
        *,
        header: Placeholders = None,
        footer: Placeholders = None,
        settings: Optional[Settings] = None,
        fetcher: Optional[Fetcher] = None,
    ) -> bytes:
        """Like :meth:`create`, but the template must be named explicitly."""
        if not template_name:
            raise ValueError("template_name is required")
        return cls.create(
            html,
            template_name,
            extras,
            header=header,
            footer=footer,
            settings=settings,
            fetcher=fetcher,
        )


create = Document.create
create_and_save = Document.create_and_save
create_with_content = Document.create_with_content
