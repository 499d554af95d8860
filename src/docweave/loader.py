"""
Document assembly.

The Loader fetches a root fragment, splices in every `<include>` it finds
(one fetch at a time, re-scanning after each merge), runs the processor
pipeline, strips comments and blank text, and hands out a Document.

    Idle -> Fetching -> Merging -> (include left? Fetching : Processing)
         -> Normalizing -> Complete
    Fetching -> Error  (terminal for that load, no retry)

Fetch failures are reported through the `error` event and a None return
value, never raised.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import re
from enum import Enum
from typing import Any

from lxml import etree

from .config import Config, get_config
from .content import registry as content_registry
from .dom import ABSOLUTE_LOCATION, Document, detach, is_element
from .events import Emitter
from .fetch import Fetcher, FetchResult
from .processors.base import Pipeline
from .processors.ids import IdGenerator, IdProcessor
from .processors.metadata import MetadataProcessor
from .processors.prototype import PrototypeProcessor

logger = logging.getLogger(__name__)

# Loader-managed attributes, never copied from an include onto its replacement
RESERVED_ATTRIBUTES = ("src", "path", "file")

LANG_PLACEHOLDER = "@lang"

XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")
REPLACEMENT_CHAR = "\ufffd"


class LoaderState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    PROCESSING = "processing"
    NORMALIZING = "normalizing"
    COMPLETE = "complete"
    ERROR = "error"


class LoaderBusyError(RuntimeError):
    """Raised when load() is called while another load is running."""


class LoadError(RuntimeError):
    """Raised by load_document() when assembly fails."""

    def __init__(self, payload: Any):
        super().__init__(f"Document load failed: {payload}")
        self.payload = payload


def default_pipeline(id_generator: IdGenerator | None = None, config: Config | None = None) -> Pipeline:
    """Ids first, then prototype cascades, then metadata extraction."""
    cfg = config or get_config()
    budget = cfg.processing.max_iterations
    return Pipeline([
        IdProcessor(id_generator or IdGenerator(), max_iterations=budget),
        PrototypeProcessor(max_iterations=budget),
        MetadataProcessor(max_iterations=budget),
    ])


def split_location(location: str) -> tuple[str | None, str | None]:
    """
    Split a location into (path, file).

    The last segment is the file; the rest, with a trailing slash, is the
    path. No directory part means no path.
    """
    parts = location.split("/")
    file = parts.pop() or None
    path = "/".join(parts) + "/" if parts else None
    return path, file


def set_path_file(element, location: str | None) -> None:
    """Write `path`/`file` attributes derived from a location."""
    if not location:
        return
    path, file = split_location(location)
    if path:
        element.set("path", path)
    if file:
        element.set("file", file)


def copy_attributes(source, target) -> None:
    """Copy non-reserved attributes the target does not define yet."""
    for name, value in source.attrib.items():
        if name in RESERVED_ATTRIBUTES:
            continue
        if target.get(name) is None:
            target.set(name, value)


def xml_safe(text: str) -> str:
    """Replace characters XML cannot carry (control chars, lone surrogates)."""
    return XML_ILLEGAL.sub(REPLACEMENT_CHAR, text)


def create_content_node(tag: str, text: str, kind: str):
    """Content node holding raw text as CDATA."""
    text = xml_safe(text)
    node = etree.Element(tag)
    # CDATA cannot contain its own terminator
    node.text = etree.CDATA(text) if "]]>" not in text else text
    node.set("type", kind)
    return node


def normalize(tree) -> int:
    """Remove comments, PIs and whitespace-only text. Returns removed count."""
    removed = 0
    for item in list(tree.iter(etree.Comment, etree.ProcessingInstruction)):
        if item.getparent() is not None:
            detach(item)
            removed += 1
    for el in tree.iter():
        if not is_element(el):
            continue
        if el.text is not None and not el.text.strip():
            el.text = None
            removed += 1
        if el.tail is not None and not el.tail.strip():
            el.tail = None
            removed += 1
    return removed


class Loader(Emitter):
    """
    Assembles a Document from a root fragment and its includes.

    Events: `complete` (Document), `error` (raw failure payload).
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        pipeline: Pipeline | None = None,
        id_generator: IdGenerator | None = None,
        config: Config | None = None,
    ):
        super().__init__()
        self.config = config or get_config()
        self.fetcher = fetcher or Fetcher(config=self.config.fetch)
        self.pipeline = pipeline if pipeline is not None else default_pipeline(id_generator, self.config)
        self.state = LoaderState.IDLE
        self.tree = None
        self.data: dict[str, Any] = {}
        self.fetch_count = 0
        self._busy = False

    @property
    def lang(self) -> str:
        return self.config.loader.lang

    @property
    def include_tag(self) -> str:
        return self.config.loader.include_tag

    async def load(self, source) -> Document | None:
        """
        Assemble a Document from a location or an already parsed tree.

        Returns None for an empty source or when a fetch fails.
        """
        if source is None or (isinstance(source, str) and not source):
            return None
        if self._busy:
            raise LoaderBusyError("A load is already in progress")

        self._busy = True
        self.tree = None
        self.data = {}
        self.fetch_count = 0
        try:
            if isinstance(source, str):
                result = await self._fetch(source)
                if not result.ok:
                    return self._fail(result)
                self._merge_root(result)
            else:
                self.state = LoaderState.MERGING
                root = source.getroot() if isinstance(source, etree._ElementTree) else source
                # Work on a copy: the caller's tree stays untouched
                self.tree = copy.deepcopy(root)

            while True:
                include = self.next_include()
                if include is None:
                    break
                result = await self._fetch(self.resolve_location(include))
                if not result.ok:
                    return self._fail(result)
                self._merge_include(include, result)

            self.state = LoaderState.PROCESSING
            self.data = await self.pipeline.run(self.tree)

            self.state = LoaderState.NORMALIZING
            removed = normalize(self.tree)
            logger.debug("normalized tree: %d nodes removed", removed)

            document = Document(self.tree, self.data)
            self.state = LoaderState.COMPLETE
            self._notify("complete", document)
            return document
        finally:
            self._busy = False

    async def _fetch(self, location: str) -> FetchResult:
        self.state = LoaderState.FETCHING
        self.fetch_count += 1
        logger.debug("fetching %s", location)
        return await self.fetcher.fetch(location)

    def _fail(self, result: FetchResult) -> None:
        logger.warning("load failed at %s (status %s)", result.location, result.status)
        self.state = LoaderState.ERROR
        self._notify("error", result.text)
        return None

    def _notify(self, event: str, payload: Any) -> None:
        # A failing consumer must not corrupt loader state
        try:
            self.trigger(event, payload)
        except Exception:
            logger.exception("%s handler raised", event)

    def _merge_root(self, result: FetchResult) -> None:
        self.state = LoaderState.MERGING
        if result.structured:
            root = result.tree
        else:
            kind = content_registry.kind_for(result.location)
            root = create_content_node("node", result.text, kind)
        set_path_file(root, result.location)
        self.tree = root

    def _merge_include(self, include, result: FetchResult) -> None:
        self.state = LoaderState.MERGING
        src = include.get("src", "").replace(LANG_PLACEHOLDER, self.lang)

        if result.structured:
            replacement = result.tree
        else:
            tag = include.get("name") or "node"
            kind = include.get("type") or content_registry.kind_for(src)
            replacement = create_content_node(tag, result.text, kind)

        set_path_file(replacement, src)
        copy_attributes(include, replacement)

        replacement.tail = include.tail
        include.getparent().replace(include, replacement)

    def next_include(self):
        """
        First include that should be fetched, in document order.

        Ignored, foreign-language and empty-src includes are dropped from the
        tree on the way.
        """
        if self.tree is None:
            return None
        if self.tree.tag == self.include_tag:
            # A root that is itself an include has nothing to be spliced into
            return None
        while True:
            # Fresh scan each time: dropping an include may drop nested ones
            include = next(self.tree.iter(self.include_tag), None)
            if include is None or self._follow(include):
                return include
            logger.debug("dropping include src=%r", include.get("src"))
            detach(include)

    def _follow(self, include) -> bool:
        if include.get("ignore") == "true":
            return False
        lang = include.get("lang")
        if lang and lang != self.lang:
            return False
        return bool(include.get("src"))

    def resolve_location(self, include) -> str:
        """Include location with `@lang` expanded and ancestor paths prefixed."""
        location = include.get("src", "").replace(LANG_PLACEHOLDER, self.lang)
        if ABSOLUTE_LOCATION.match(location):
            return location
        for ancestor in include.iterancestors():
            if ABSOLUTE_LOCATION.match(location):
                break
            path = ancestor.get("path")
            if path:
                location = path + location
        return location


def load_document(source, **kwargs) -> Document:
    """Synchronous load; raises LoadError on failure."""
    errors: list[Any] = []

    async def run() -> Document | None:
        loader = Loader(**kwargs)
        loader.on("error", errors.append)
        async with loader.fetcher:
            return await loader.load(source)

    document = asyncio.run(run())
    if document is None:
        raise LoadError(errors[0] if errors else "empty source")
    return document
