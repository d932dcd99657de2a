"""``{{name}}`` placeholder substitution for header and footer parts."""

from __future__ import annotations

import re
from typing import Mapping, Optional

_PLACEHOLDER_RE = re.compile(r"\{\{[^}]+\}\}")


def replace_placeholders(source: str, placeholders: Optional[Mapping[str, object]] = None) -> str:
    """Replace ``{{name}}`` tokens in *source* with values from *placeholders*.

    Matching is case-sensitive and values are inserted as-is, without XML
    escaping. Tokens left over after substitution are removed.
    """
    content = source
    for name, text in (placeholders or {}).items():
        content = content.replace(f"{{{{{name}}}}}", "" if text is None else str(text))
    return _PLACEHOLDER_RE.sub("", content)
