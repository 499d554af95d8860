"""
Tests for the Fetcher.

Remote fetches run against httpx.MockTransport; local fetches use tmp_path.
"""

import asyncio

import httpx
import pytest

from docweave.config import FetchConfig
from docweave.fetch import Fetcher, FetchResult, is_remote


def make_fetcher(handler) -> Fetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return Fetcher(client=client, config=FetchConfig())


def fetch(fetcher: Fetcher, location: str) -> FetchResult:
    async def run():
        async with fetcher:
            return await fetcher.fetch(location)

    return asyncio.run(run())


class TestRemote:
    def test_xml_content_type_is_parsed(self):
        def handler(request):
            return httpx.Response(200, text='<book id="b"/>', headers={"content-type": "application/xml"})

        result = fetch(make_fetcher(handler), "http://example.org/book")
        assert result.ok
        assert result.structured
        assert result.tree.get("id") == "b"
        assert result.status == 200

    def test_structured_extension_is_parsed(self):
        def handler(request):
            return httpx.Response(200, text='<book id="b"/>', headers={"content-type": "text/plain"})

        result = fetch(make_fetcher(handler), "http://example.org/book.xml")
        assert result.structured

    def test_plain_text(self):
        def handler(request):
            return httpx.Response(200, text="# Title", headers={"content-type": "text/markdown"})

        result = fetch(make_fetcher(handler), "http://example.org/intro.md")
        assert result.ok
        assert not result.structured
        assert result.text == "# Title"

    def test_error_status(self):
        def handler(request):
            return httpx.Response(404, text="not here")

        result = fetch(make_fetcher(handler), "http://example.org/missing.xml")
        assert not result.ok
        assert result.status == 404
        assert result.text == "not here"

    def test_redirect_reports_final_location(self):
        def handler(request):
            if request.url.path == "/old.xml":
                return httpx.Response(301, headers={"location": "http://example.org/new/doc.xml"})
            return httpx.Response(200, text='<doc id="d"/>', headers={"content-type": "text/xml"})

        result = fetch(make_fetcher(handler), "http://example.org/old.xml")
        assert result.ok
        assert result.location == "http://example.org/new/doc.xml"

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = fetch(make_fetcher(handler), "http://example.org/a.xml")
        assert not result.ok
        assert result.status == 0
        assert "connection refused" in result.text

    def test_malformed_xml_falls_back_to_text(self):
        def handler(request):
            return httpx.Response(200, text="<open>", headers={"content-type": "application/xml"})

        result = fetch(make_fetcher(handler), "http://example.org/broken.xml")
        assert result.ok
        assert not result.structured
        assert result.text == "<open>"

    def test_injected_client_is_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        fetch(Fetcher(client=client, config=FetchConfig()), "http://example.org/a")
        assert not client.is_closed


class TestLocal:
    def test_xml_file(self, tmp_path):
        path = tmp_path / "doc.xml"
        path.write_text('<doc id="d"><![CDATA[raw]]></doc>')

        result = fetch(Fetcher(config=FetchConfig()), str(path))
        assert result.ok
        assert result.tree.get("id") == "d"
        assert result.tree.text == "raw"

    def test_file_url(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        result = fetch(Fetcher(config=FetchConfig()), path.as_uri())
        assert result.ok
        assert result.text == "hello"
        assert not result.structured

    def test_xml_declaration_without_extension(self, tmp_path):
        path = tmp_path / "fragment"
        path.write_text('<?xml version="1.0"?><doc id="d"/>')

        result = fetch(Fetcher(config=FetchConfig()), str(path))
        assert result.structured

    def test_missing_file(self, tmp_path):
        result = fetch(Fetcher(config=FetchConfig()), str(tmp_path / "gone.xml"))
        assert not result.ok
        assert result.status == 404
        assert result.text.startswith("File not found")

    def test_directory_is_not_readable(self, tmp_path):
        result = fetch(Fetcher(config=FetchConfig()), str(tmp_path))
        assert not result.ok


@pytest.mark.parametrize(
    "location, remote",
    [
        ("http://example.org/a.xml", True),
        ("https://example.org/a.xml", True),
        ("file:///tmp/a.xml", False),
        ("docs/a.xml", False),
    ],
)
def test_is_remote(location, remote):
    assert is_remote(location) is remote
