"""
Content kinds and their registry.

Fragments that are not structured XML end up as content nodes. The kind of
such a node (its `type` attribute) comes from the file extension of the
source, and the kind decides how the node's text is decoded.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

# Generic content wrapper kind, used when the source has no extension
GENERIC_KIND = "cdata"


@dataclass
class ContentKind:
    """A named content kind with the extensions it covers."""
    name: str
    extensions: list[str]
    decoder: Callable[[str], Any] | None = None


class ContentRegistry:
    """Registry of content kinds keyed by name and by extension."""

    def __init__(self):
        self._kinds: list[ContentKind] = []
        self._by_extension: dict[str, ContentKind] = {}
        self._by_name: dict[str, ContentKind] = {}

    def register(self, kind: ContentKind) -> None:
        """Register a content kind."""
        self._kinds.append(kind)
        self._by_name[kind.name] = kind
        for ext in kind.extensions:
            ext = self._normalize(ext)
            # First registered wins for extension conflicts
            if ext not in self._by_extension:
                self._by_extension[ext] = kind

    def get_by_name(self, name: str) -> ContentKind | None:
        return self._by_name.get(name)

    def get_by_extension(self, ext: str) -> ContentKind | None:
        return self._by_extension.get(self._normalize(ext))

    def kind_for(self, location: str | None) -> str:
        """
        Content kind for a source location.

        Registered extension -> its kind name; unregistered extension -> the
        bare extension; no extension -> the generic wrapper kind.
        """
        ext = extension_of(location)
        if not ext:
            return GENERIC_KIND
        kind = self.get_by_extension(ext)
        return kind.name if kind else ext

    def decode(self, kind_name: str, text: str) -> Any:
        """Decode text for a kind; unknown kinds and decode failures return text."""
        kind = self._by_name.get(kind_name)
        if kind is None or kind.decoder is None:
            return text
        try:
            return kind.decoder(text)
        except ValueError:
            return text

    @property
    def kinds(self) -> list[ContentKind]:
        return list(self._kinds)

    @staticmethod
    def _normalize(ext: str) -> str:
        ext = ext.lower()
        return ext if ext.startswith(".") else "." + ext


def extension_of(location: str | None) -> str | None:
    """Lowercase extension (without dot) of the last path segment, if any."""
    if not location:
        return None
    # Drop query and fragment before looking at the file name
    name = location.split("?", 1)[0].split("#", 1)[0].rsplit("/", 1)[-1]
    if "." not in name:
        return None
    ext = name.rsplit(".", 1)[-1].lower()
    return ext or None


def _build_registry() -> ContentRegistry:
    reg = ContentRegistry()
    reg.register(ContentKind("txt", [".txt", ".text"]))
    reg.register(ContentKind("md", [".md", ".markdown"]))
    reg.register(ContentKind("html", [".html", ".htm"]))
    reg.register(ContentKind("css", [".css"]))
    reg.register(ContentKind("js", [".js"]))
    reg.register(ContentKind("json", [".json"], decoder=json.loads))
    reg.register(ContentKind("svg", [".svg"]))
    reg.register(ContentKind("csv", [".csv"]))
    return reg


registry = _build_registry()
