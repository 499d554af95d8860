"""
Fragment fetching.

A Fetcher turns a location into a FetchResult: the parsed XML root when the
payload is structured, the raw text otherwise, and the final location after
redirects. Remote locations go through an httpx.AsyncClient, everything else
is read from the local filesystem.

Failures are reported through `ok=False`, never raised: the Loader decides
what a failed fetch means.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
from lxml import etree

from .config import FetchConfig, get_config
from .content import extension_of

logger = logging.getLogger(__name__)

REMOTE_SCHEMES = ("http", "https")


@dataclass
class FetchResult:
    """Outcome of fetching one location."""
    location: str
    ok: bool
    status: int = 0
    text: str = ""
    tree: etree._Element | None = None

    @property
    def structured(self) -> bool:
        return self.tree is not None


def is_remote(location: str) -> bool:
    return urlparse(location).scheme in REMOTE_SCHEMES


def _xml_parser() -> etree.XMLParser:
    # Keep CDATA sections so content nodes survive a round trip
    return etree.XMLParser(strip_cdata=False, resolve_entities=False, no_network=True)


class Fetcher:
    """Fetch collaborator used by the Loader."""

    def __init__(self, client: httpx.AsyncClient | None = None, config: FetchConfig | None = None):
        self.config = config or get_config().fetch
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.config.user_agent},
            )
            self._owns_client = True
        return self._client

    async def fetch(self, location: str) -> FetchResult:
        logger.debug("fetch %s", location)
        if is_remote(location):
            return await self._fetch_remote(location)
        return await self._fetch_local(location)

    async def _fetch_remote(self, location: str) -> FetchResult:
        try:
            response = await self._get_client().get(location)
        except httpx.HTTPError as e:
            logger.warning("fetch failed for %s: %s", location, e)
            return FetchResult(location=location, ok=False, text=str(e))

        final = str(response.url)
        if not response.is_success:
            logger.warning("fetch %s -> %s", final, response.status_code)
            return FetchResult(location=final, ok=False, status=response.status_code, text=response.text)

        content_type = response.headers.get("content-type", "")
        return FetchResult(
            location=final,
            ok=True,
            status=response.status_code,
            text=response.text,
            tree=self.parse_structured(response.content, final, content_type),
        )

    async def _fetch_local(self, location: str) -> FetchResult:
        path = self._local_path(location)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            logger.warning("fetch %s -> not found", location)
            return FetchResult(location=location, ok=False, status=404, text=f"File not found: {path}")
        except OSError as e:
            logger.warning("fetch failed for %s: %s", location, e)
            return FetchResult(location=location, ok=False, text=str(e))

        return FetchResult(
            location=location,
            ok=True,
            status=200,
            text=data.decode("utf-8", errors="replace"),
            tree=self.parse_structured(data, location),
        )

    @staticmethod
    def _local_path(location: str) -> Path:
        parsed = urlparse(location)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        return Path(location)

    def looks_structured(self, data: bytes, location: str, content_type: str = "") -> bool:
        if "xml" in content_type.lower():
            return True
        ext = extension_of(location)
        if ext and f".{ext}" in {e.lower() for e in self.config.structured_extensions}:
            return True
        return data.lstrip().startswith(b"<?xml")

    def parse_structured(self, data: bytes, location: str, content_type: str = "") -> etree._Element | None:
        """Parse the payload as XML if it claims to be structured; None otherwise."""
        if not self.looks_structured(data, location, content_type):
            return None
        try:
            return etree.fromstring(data, _xml_parser())
        except etree.XMLSyntaxError as e:
            logger.debug("not well-formed XML at %s (%s), treating as text", location, e)
            return None
