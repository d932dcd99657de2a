"""Configuration for html2docx.

Two kinds of configuration live here:

* :class:`PackageLayout` -- the fixed member paths of a word-processing
  package and the relationship ids the bundled stylesheets emit. These are
  a contract between the stylesheets, the template and the assembler and
  are not expected to change at runtime.
* :class:`Settings` -- where stylesheets and templates are loaded from.
  Defaults point at the data shipped inside the package and can be
  overridden through environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

_PACKAGE_DIR = Path(__file__).parent

DEFAULT_XSLT_DIR = _PACKAGE_DIR / "xslt"
DEFAULT_TEMPLATES_DIR = _PACKAGE_DIR / "templates"

ENV_XSLT_DIR = "HTML2DOCX_XSLT_DIR"
ENV_TEMPLATES_DIR = "HTML2DOCX_TEMPLATES_DIR"
ENV_CUSTOM_TEMPLATES_DIR = "HTML2DOCX_CUSTOM_TEMPLATES_DIR"


# ---------------------------------------------------------------------------
# Entry policies
# ---------------------------------------------------------------------------

POLICY_MERGE = "merge"
POLICY_REPLACE = "replace"
POLICY_HEADER = "header"
POLICY_FOOTER = "footer"
POLICY_CONTENT_TYPES = "content_types"
POLICY_COPY = "copy"


@dataclass(frozen=True)
class PackageLayout:
    """Fixed member paths and relationship ids of the output package."""

    document: str = "word/document.xml"
    numbering: str = "word/numbering.xml"
    relations: str = "word/_rels/document.xml.rels"
    content_types: str = "[Content_Types].xml"
    header: str = "word/header1.xml"
    footer: str = "word/footer1.xml"
    media_dir: str = "word/media"

    # Must match the ids relations.xslt gives header1.xml / footer1.xml
    header_rel_id: str = "rId8"
    footer_rel_id: str = "rId9"

    def policies(self) -> Mapping[str, str]:
        """Return the read-only path -> policy table used by the assembler.

        Paths not in the table are copied unchanged, unless a generated
        override exists for them.
        """
        return MappingProxyType({
            self.document: POLICY_MERGE,
            self.numbering: POLICY_REPLACE,
            self.relations: POLICY_REPLACE,
            self.header: POLICY_HEADER,
            self.footer: POLICY_FOOTER,
            self.content_types: POLICY_CONTENT_TYPES,
        })

    def media_path(self, filename: str) -> str:
        return f"{self.media_dir}/{filename}"


DEFAULT_LAYOUT = PackageLayout()


# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------

@dataclass
class Settings:
    """Locations of stylesheets and templates.

    Attributes:
        xslt_dir: Directory holding ``<name>.xslt`` stylesheets.
        default_templates_dir: Directory holding ``default.docx`` and the
            bundled templates.
        custom_templates_dir: Optional directory searched before the
            default one when a template is requested by name.
        extension: Package extension appended to template names.
        default_template: File name used when no template is requested.
    """

    xslt_dir: Path = field(default_factory=lambda: DEFAULT_XSLT_DIR)
    default_templates_dir: Path = field(default_factory=lambda: DEFAULT_TEMPLATES_DIR)
    custom_templates_dir: Optional[Path] = None
    extension: str = ".docx"
    default_template: str = "default.docx"

    def __post_init__(self) -> None:
        self.xslt_dir = Path(self.xslt_dir)
        self.default_templates_dir = Path(self.default_templates_dir)
        if self.custom_templates_dir is not None:
            self.custom_templates_dir = Path(self.custom_templates_dir)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build settings, letting ``HTML2DOCX_*`` variables override defaults."""
        env = os.environ if environ is None else environ
        settings = cls()
        if env.get(ENV_XSLT_DIR):
            settings.xslt_dir = Path(env[ENV_XSLT_DIR])
        if env.get(ENV_TEMPLATES_DIR):
            settings.default_templates_dir = Path(env[ENV_TEMPLATES_DIR])
        if env.get(ENV_CUSTOM_TEMPLATES_DIR):
            settings.custom_templates_dir = Path(env[ENV_CUSTOM_TEMPLATES_DIR])
        logger.debug(
            f"Settings: xslt_dir={settings.xslt_dir} "
            f"templates={settings.default_templates_dir} "
            f"custom={settings.custom_templates_dir}"
        )
        return settings
