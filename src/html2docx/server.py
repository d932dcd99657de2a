"""FastAPI web service for HTML to DOCX conversion.

Endpoints::

    GET  /health        Health check.
    GET  /templates     List available templates.
    POST /convert       Upload an .html file and receive .docx back.
    POST /convert/text  Send raw HTML, receive .docx bytes.

Run::

    uvicorn html2docx.server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from html2docx import __version__
from html2docx.config import Settings
from html2docx.document import Document
from html2docx.errors import Html2DocxError, ImageFetchError, TemplateNotFoundError
from html2docx.images import ImageFetcher
from html2docx.templates import list_templates

logger = logging.getLogger(__name__)

app = FastAPI(
    title="html2docx",
    description="HTML to DOCX conversion service",
    version=__version__,
)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _content_disposition(filename: str) -> str:
    """Build Content-Disposition header, RFC 5987 for non-ASCII names."""
    try:
        filename.encode("ascii")
        return f'attachment; filename="{filename}"'
    except UnicodeEncodeError:
        encoded = quote(filename)
        return f"attachment; filename*=UTF-8''{encoded}"


def _template_name(template: Optional[str]) -> Optional[str]:
    """Reject template values that are paths rather than names."""
    if not template:
        return None
    if "/" in template or "\\" in template or ".." in template or Path(template).is_absolute():
        raise HTTPException(status_code=422, detail=f"invalid template name: {template!r}")
    return template


def _placeholders(field: str, raw: Optional[str]) -> dict[str, str]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=422, detail=f"{field} is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise HTTPException(status_code=422, detail=f"{field} must be a JSON object")
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _convert(
    html: str,
    template: Optional[str],
    extras: bool,
    header: dict[str, str],
    footer: dict[str, str],
) -> bytes:
    """Run one conversion; images are fetched from remote URLs only."""
    try:
        with ImageFetcher(allow_local=False) as fetcher:
            return Document.create(
                html,
                template,
                extras,
                header=header,
                footer=footer,
                settings=Settings.from_env(),
                fetcher=fetcher,
            )
    except TemplateNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ImageFetchError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Html2DocxError as exc:
        logger.error(f"Conversion failed: {exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@app.get("/templates")
async def templates() -> dict[str, list[str]]:
    """List available templates."""
    return {"templates": list_templates(Settings.from_env())}


@app.post("/convert")
async def convert_file(
    file: UploadFile = File(...),
    template: Optional[str] = Form(None),
    extras: bool = Form(False),
    encoding: str = Form("utf-8"),
    header: Optional[str] = Form(None),
    footer: Optional[str] = Form(None),
) -> Response:
    """Upload an HTML file and receive DOCX back.

    - **file**: HTML file (.html)
    - **template**: Template name (default template when omitted)
    - **extras**: Enable the extras stylesheet
    - **encoding**: Source file encoding
    - **header** / **footer**: JSON objects of placeholder values
    """
    name = _template_name(template)
    header_values = _placeholders("header", header)
    footer_values = _placeholders("footer", footer)

    raw = await file.read()
    html = raw.decode(encoding)

    docx_bytes = await run_in_threadpool(_convert, html, name, extras, header_values, footer_values)

    filename = (file.filename or "document.html").rsplit(".", 1)[0] + ".docx"

    return Response(
        content=docx_bytes,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": _content_disposition(filename)},
    )


@app.post("/convert/text")
async def convert_text(
    html: str = Form(""),
    template: Optional[str] = Form(None),
    extras: bool = Form(False),
    header: Optional[str] = Form(None),
    footer: Optional[str] = Form(None),
) -> Response:
    """Send raw HTML and receive DOCX bytes.

    - **html**: HTML source
    - **template**: Template name
    - **extras**: Enable the extras stylesheet
    - **header** / **footer**: JSON objects of placeholder values
    """
    docx_bytes = await run_in_threadpool(
        _convert,
        html,
        _template_name(template),
        extras,
        _placeholders("header", header),
        _placeholders("footer", footer),
    )

    return Response(
        content=docx_bytes,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="document.docx"'},
    )
