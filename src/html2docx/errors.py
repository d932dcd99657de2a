"""Exceptions raised by html2docx.

Every failure that aborts a generation derives from :class:`Html2DocxError`;
the original low-level exception is always chained as ``__cause__``.
"""

from __future__ import annotations


class Html2DocxError(Exception):
    """Base class for all html2docx errors."""


class TemplateNotFoundError(Html2DocxError, FileNotFoundError):
    """The template package could not be resolved to a readable file."""

    def __init__(
        self,
        name: str,
        searched: list[str] | None = None,
        reason: str | None = None,
    ) -> None:
        self.name = name
        self.searched = searched or []
        self.reason = reason
        if reason:
            message = f"template cannot be read: {name}: {reason}"
        else:
            message = f"template not found: {name}"
        if self.searched:
            message += f" (searched: {', '.join(self.searched)})"
        super().__init__(message)


class TransformError(Html2DocxError):
    """A stylesheet failed to load, failed to apply, or emitted invalid XML."""

    def __init__(self, stylesheet: str, reason: str) -> None:
        self.stylesheet = stylesheet
        self.reason = reason
        super().__init__(f"transform '{stylesheet}' failed: {reason}")


class ImageFetchError(Html2DocxError):
    """An image referenced by the HTML could not be fetched for embedding."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"could not fetch image {url}: {reason}")
