"""html2docx - convert HTML fragments to Word (.docx) documents.

A template ``.docx`` package is reused as the starting point; the HTML is
run through a chain of XSLT stylesheets and the generated body, numbering
and relationship parts are merged back into a copy of the template.

Usage::

    import html2docx

    data = html2docx.create("<h1>Report</h1><p>Hello</p>",
                            header={"title": "Quarterly report"})
    html2docx.create_and_save("<p>Hello</p>", "out.docx", "letterhead")
"""

__version__ = "0.3.0"

from html2docx.document import (  # noqa: E402
    Document,
    create,
    create_and_save,
    create_with_content,
)
from html2docx.errors import (  # noqa: E402
    Html2DocxError,
    ImageFetchError,
    TemplateNotFoundError,
    TransformError,
)

__all__ = [
    "__version__",
    "Document",
    "create",
    "create_and_save",
    "create_with_content",
    "Html2DocxError",
    "ImageFetchError",
    "TemplateNotFoundError",
    "TransformError",
]
