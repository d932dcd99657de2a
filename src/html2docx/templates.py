"""Template lookup: template name -> path of a ``.docx`` package."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from html2docx.config import Settings
from html2docx.errors import TemplateNotFoundError

logger = logging.getLogger(__name__)


def with_extension(name: str, extension: str = ".docx") -> str:
    """Append *extension* to *name* unless it already ends with it."""
    return name if name.endswith(extension) else name + extension


def resolve_template(
    name: Optional[Union[str, Path]] = None,
    settings: Optional[Settings] = None,
) -> Path:
    """Return the path of the template called *name*.

    ``None`` selects the default template. A name is looked up in the
    custom templates directory first, then in the default one, and finally
    taken as a path in its own right.

    Raises:
        TemplateNotFoundError: If no readable file matches.
    """
    settings = settings or Settings.from_env()

    if name is None:
        candidates = [settings.default_templates_dir / settings.default_template]
        name = settings.default_template
    else:
        name = with_extension(str(name), settings.extension)
        candidates = []
        if not Path(name).is_absolute():
            if settings.custom_templates_dir is not None:
                candidates.append(settings.custom_templates_dir / name)
            candidates.append(settings.default_templates_dir / name)
        candidates.append(Path(name))

    for candidate in candidates:
        if candidate.is_file():
            logger.debug(f"Template {name} resolved to {candidate}")
            return candidate

    raise TemplateNotFoundError(str(name), [str(c) for c in candidates])


def list_templates(settings: Optional[Settings] = None) -> list[str]:
    """Names (without extension) of the templates available by name."""
    settings = settings or Settings.from_env()
    names: set[str] = set()
    for directory in (settings.custom_templates_dir, settings.default_templates_dir):
        if directory is not None and directory.is_dir():
            names.update(p.stem for p in directory.glob(f"*{settings.extension}"))
    return sorted(names)
