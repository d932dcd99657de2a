"""Tests for the FastAPI web service."""

from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient

from html2docx import server
from html2docx.config import ENV_CUSTOM_TEMPLATES_DIR
from html2docx.server import DOCX_MEDIA_TYPE, _content_disposition, app

from conftest import build_template, read_docx, texts


@pytest.fixture
def client():
    """Create an async test client."""
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def letterhead(tmp_path, monkeypatch):
    custom = tmp_path / "custom"
    custom.mkdir()
    monkeypatch.setenv(ENV_CUSTOM_TEMPLATES_DIR, str(custom))
    return build_template(custom / "letterhead.docx")


def test_content_disposition_non_ascii():
    assert _content_disposition("보고서.docx").startswith("attachment; filename*=UTF-8''")
    assert _content_disposition("report.docx") == 'attachment; filename="report.docx"'


@pytest.mark.asyncio
class TestHealthEndpoint:

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert "version" in data


@pytest.mark.asyncio
class TestTemplatesEndpoint:

    async def test_list_templates(self, client, letterhead):
        resp = await client.get("/templates")
        assert resp.status_code == 200
        data = resp.json()
        assert "default" in data["templates"]
        assert "letterhead" in data["templates"]


@pytest.mark.asyncio
class TestConvertFileEndpoint:

    async def test_convert_file_upload(self, client):
        resp = await client.post(
            "/convert",
            files={"file": ("test.html", b"<h1>Hello</h1><p>World</p>", "text/html")},
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"] == DOCX_MEDIA_TYPE
        assert texts(read_docx(resp.content)["word/document.xml"]) == ["Hello", "World"]

    async def test_content_disposition_header(self, client):
        resp = await client.post(
            "/convert",
            files={"file": ("myfile.html", b"<p>x</p>", "text/html")},
        )
        assert resp.status_code == 200
        assert "myfile.docx" in resp.headers.get("content-disposition", "")

    async def test_convert_with_template(self, client, letterhead):
        resp = await client.post(
            "/convert",
            files={"file": ("test.html", b"<p>x</p>", "text/html")},
            data={"template": "letterhead", "extras": "true"},
        )
        assert resp.status_code == 200
        assert "docProps/custom.bin" in read_docx(resp.content)

    async def test_encoding(self, client):
        resp = await client.post(
            "/convert",
            files={"file": ("test.html", "<p>café</p>".encode("latin-1"), "text/html")},
            data={"encoding": "latin-1"},
        )
        assert resp.status_code == 200
        assert texts(read_docx(resp.content)["word/document.xml"]) == ["café"]

    async def test_unknown_template(self, client):
        resp = await client.post(
            "/convert",
            files={"file": ("test.html", b"<p>x</p>", "text/html")},
            data={"template": "nope"},
        )
        assert resp.status_code == 404

    async def test_placeholders(self, client, letterhead):
        resp = await client.post(
            "/convert",
            files={"file": ("test.html", b"<p>x</p>", "text/html")},
            data={
                "template": "letterhead",
                "header": json.dumps({"title": "Agenda"}),
                "footer": json.dumps({"page": 4}),
            },
        )
        assert resp.status_code == 200
        files = read_docx(resp.content)
        assert texts(files["word/header1.xml"]) == ["Agenda", ""]
        assert texts(files["word/footer1.xml"]) == ["Page 4"]

    async def test_invalid_placeholder_json(self, client):
        resp = await client.post(
            "/convert",
            files={"file": ("test.html", b"<p>x</p>", "text/html")},
            data={"header": "[]"},
        )
        assert resp.status_code == 422

    @pytest.mark.parametrize("template", ["../letterhead", "/etc/passwd", "sub/letterhead", "..\\letterhead"])
    async def test_path_like_template_rejected(self, client, letterhead, template):
        resp = await client.post(
            "/convert",
            files={"file": ("test.html", b"<p>x</p>", "text/html")},
            data={"template": template},
        )
        assert resp.status_code == 422

    async def test_conversion_runs_in_threadpool(self, client, monkeypatch):
        calls = []
        original = server.run_in_threadpool

        async def recording(func, *args, **kwargs):
            calls.append(func)
            return await original(func, *args, **kwargs)

        monkeypatch.setattr(server, "run_in_threadpool", recording)
        resp = await client.post(
            "/convert",
            files={"file": ("test.html", b"<p>x</p>", "text/html")},
        )
        assert resp.status_code == 200
        assert calls == [server._convert]


@pytest.mark.asyncio
class TestConvertTextEndpoint:

    async def test_convert_text(self, client):
        resp = await client.post("/convert/text", data={"html": "<h1>Hello</h1><p>Paragraph.</p>"})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == DOCX_MEDIA_TYPE
        assert len(resp.content) > 0

    async def test_empty_html(self, client):
        resp = await client.post("/convert/text", data={})
        assert resp.status_code == 200

    async def test_non_ascii_text(self, client):
        resp = await client.post("/convert/text", data={"html": "<h1>한글 제목</h1><p>한글 본문입니다.</p>"})
        assert resp.status_code == 200
        assert "한글 제목" in texts(read_docx(resp.content)["word/document.xml"])

    async def test_placeholders(self, client, letterhead):
        resp = await client.post(
            "/convert/text",
            data={
                "html": "<p>x</p>",
                "template": "letterhead",
                "header": json.dumps({"title": "Minutes"}),
                "footer": json.dumps({"page": 2}),
            },
        )
        assert resp.status_code == 200
        files = read_docx(resp.content)
        assert texts(files["word/header1.xml"]) == ["Minutes", ""]
        assert texts(files["word/footer1.xml"]) == ["Page 2"]

    async def test_invalid_placeholder_json(self, client):
        resp = await client.post("/convert/text", data={"html": "<p>x</p>", "header": "{not json"})
        assert resp.status_code == 422

    async def test_placeholder_json_not_object(self, client):
        resp = await client.post("/convert/text", data={"html": "<p>x</p>", "footer": "[1, 2]"})
        assert resp.status_code == 422

    async def test_unreachable_image(self, client):
        resp = await client.post(
            "/convert/text",
            data={"html": '<img src="file:///nonexistent/dir/pic.png">'},
        )
        assert resp.status_code == 502

    @pytest.mark.parametrize("as_uri", [False, True])
    async def test_local_image_not_read(self, client, tmp_path, as_uri):
        secret = tmp_path / "secret.png"
        secret.write_bytes(b"local-secret-bytes")
        src = secret.as_uri() if as_uri else str(secret)
        resp = await client.post("/convert/text", data={"html": f'<img src="{src}">'})
        assert resp.status_code == 502
        assert "not allowed" in resp.json()["detail"]
        assert b"local-secret-bytes" not in resp.content

    @pytest.mark.parametrize("template", ["../custom/letterhead", "/tmp/letterhead", "custom/letterhead"])
    async def test_path_like_template_rejected(self, client, letterhead, template):
        resp = await client.post("/convert/text", data={"html": "<p>x</p>", "template": template})
        assert resp.status_code == 422
        assert "invalid template name" in resp.json()["detail"]
