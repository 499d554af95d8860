"""
DOM - Document Object Model for docweave

A Document owns one assembled lxml tree. Nodes are thin wrappers over its
elements; all structure (parent, children, siblings) is read from the tree on
demand.

Key invariant: one Node instance per (Document, id). Wrappers are cached by
id, so relational checks can compare Nodes by identity.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from typing import Any

from lxml import etree

from . import selectors
from .content import registry as content_registry

# Node type for structural nodes; every other type marks a content node
DEFAULT_TYPE = "generic"

INTERPOLATION_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][\w-]*)\s*\}\}")

# URL scheme or leading slash: ancestor paths no longer apply
ABSOLUTE_LOCATION = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*:|/)")


def is_element(item: Any) -> bool:
    """True for lxml elements (comments and PIs have non-string tags)."""
    return isinstance(item, etree._Element) and isinstance(item.tag, str)


def detach(item) -> None:
    """Remove an element, comment or PI from its parent, keeping its tail text."""
    parent = item.getparent()
    if parent is None:
        return
    tail = item.tail
    if tail:
        previous = item.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + tail
        else:
            parent.text = (parent.text or "") + tail
    parent.remove(item)


def inner_markup(element) -> str:
    """Text plus serialized child markup of an element."""
    parts = [element.text or ""]
    for child in element:
        parts.append(etree.tostring(child, encoding="unicode", with_tail=True))
    return "".join(parts)


class Node:
    """A wrapped element of a Document tree."""

    __slots__ = ("_element", "_document")

    def __init__(self, element, document: Document):
        self._element = element
        self._document = document

    def __repr__(self) -> str:
        return f"<Node {self.name}#{self.id}>"

    @property
    def element(self):
        """Underlying lxml element."""
        return self._element

    @property
    def document(self) -> Document:
        return self._document

    # -- attributes --

    @property
    def id(self) -> str:
        return self._element.get("id")

    @property
    def name(self) -> str:
        return etree.QName(self._element).localname

    @property
    def type(self) -> str:
        return self._element.get("type") or DEFAULT_TYPE

    @property
    def class_name(self) -> str | None:
        return self._element.get("class")

    @property
    def is_content(self) -> bool:
        """Content nodes hold data; their inner markup is not structure."""
        return self.type != DEFAULT_TYPE

    @property
    def attributes(self) -> dict[str, str]:
        return dict(self._element.attrib)

    def attr(self, name: str) -> str | None:
        return self._element.get(name)

    def has_attr(self, name: str) -> bool:
        return name in self._element.attrib

    # -- structure --

    @property
    def parent(self) -> Node | None:
        parent = self._element.getparent()
        if parent is None:
            return None
        return self._document.wrap(parent)

    @property
    def children(self) -> list[Node]:
        if self.is_content:
            return []
        return self._document.wrap(list(self._element))

    @property
    def first(self) -> Node | None:
        children = self.children
        return children[0] if children else None

    @property
    def last(self) -> Node | None:
        children = self.children
        return children[-1] if children else None

    @property
    def next(self) -> Node | None:
        for sibling in self._element.itersiblings():
            node = self._document.wrap(sibling)
            if node is not None:
                return node
        return None

    @property
    def previous(self) -> Node | None:
        for sibling in self._element.itersiblings(preceding=True):
            node = self._document.wrap(sibling)
            if node is not None:
                return node
        return None

    @property
    def index(self) -> int:
        """Position among the parent's children (0 for the root)."""
        parent = self.parent
        if parent is None:
            return 0
        return parent.children.index(self)

    @property
    def ancestors(self) -> list[Node]:
        """Ancestors, nearest first."""
        result = []
        node = self.parent
        while node is not None:
            result.append(node)
            node = node.parent
        return result

    def is_ancestor_of(self, other: Node) -> bool:
        return any(ancestor is self for ancestor in other.ancestors)

    def is_descendant_of(self, other: Node) -> bool:
        return other.is_ancestor_of(self)

    def depth_first(self) -> Iterator[Node]:
        """Traverse structural nodes depth-first, yielding self then children."""
        yield self
        for child in self.children:
            yield from child.depth_first()

    def breadth_first(self) -> Iterator[Node]:
        """Traverse structural nodes breadth-first."""
        queue: list[Node] = [self]
        while queue:
            node = queue.pop(0)
            yield node
            queue.extend(node.children)

    # -- selectors --

    def find(self, selector: str) -> list[Node]:
        """Descendants matching a CSS selector."""
        return self._document.find(selector, self)

    def matches(self, selector: str) -> bool:
        return selectors.matches_one(self._element, selector)

    # -- locations --

    @property
    def uri(self) -> str:
        """Cumulative `id/` segments from the root down to this node."""
        segment = f"{self.id}/"
        parent = self.parent
        return parent.uri + segment if parent is not None else segment

    @property
    def hash(self) -> str:
        return "#!/" + self.uri

    @property
    def url(self) -> str | None:
        """
        Cumulative `path` attributes from the root, with trailing slashes.

        An absolute path starts over: ancestors above it are not prefixed.
        """
        path = self.attr("path")
        if path and not path.endswith("/"):
            path += "/"
        parent = self.parent
        if parent is None or (path and ABSOLUTE_LOCATION.match(path)):
            return path or None
        base = parent.url
        if not path:
            return base
        return (base or "") + path

    @property
    def file(self) -> str | None:
        """Location of the source file this node came from."""
        file = self.attr("file")
        if not file:
            parent = self.parent
            return parent.file if parent is not None else None
        return (self.url or "") + file

    # -- content --

    @property
    def text(self) -> str:
        return inner_markup(self._element)

    @property
    def content(self) -> Any:
        """Text decoded according to the node type."""
        return content_registry.decode(self.type, self.text)

    # -- metadata --

    def meta(self, key: str) -> Any:
        """Metadata value collected for this node, or None."""
        return self._document.data.get("meta", {}).get(self.id, {}).get(key)

    def interpolate(self, key: str) -> str | None:
        """Metadata value with `{{ name }}` replaced by node attributes/properties."""
        value = self.meta(key)
        if not isinstance(value, str):
            return None

        def resolve(m: re.Match) -> str:
            name = m.group(1)
            if self.has_attr(name):
                return self.attr(name)
            found = getattr(self, name.replace("-", "_"), None)
            return "" if found is None or callable(found) else str(found)

        return INTERPOLATION_PATTERN.sub(resolve, value)


class Document:
    """An assembled tree plus its wrapper cache and processor data."""

    def __init__(self, tree, data: dict[str, Any] | None = None):
        if isinstance(tree, etree._ElementTree):
            tree = tree.getroot()
        if not is_element(tree):
            raise ValueError("Document requires an element as root")
        self._root_element = tree
        self._cache: dict[str, Node] = {}
        self.data: dict[str, Any] = dict(data or {})

    @property
    def root(self) -> Node:
        return self.wrap(self._root_element)

    @property
    def tree(self):
        return self._root_element

    def __len__(self) -> int:
        return len(self._cache)

    def wrap(self, raw):
        """
        Wrap one element or a sequence of elements into cached Nodes.

        Items without an id, non-elements and elements of another tree are
        skipped: None for a single item, omitted from a list.
        """
        if isinstance(raw, Node):
            return raw if raw.document is self else None
        if isinstance(raw, etree._Element):
            return self._wrap_one(raw)
        if isinstance(raw, Iterable) and not isinstance(raw, (str, bytes)):
            result = []
            for item in raw:
                node = self.wrap(item) if isinstance(item, Node) else self._wrap_one(item)
                if node is not None:
                    result.append(node)
            return result
        return None

    def _wrap_one(self, element) -> Node | None:
        if not is_element(element):
            return None
        node_id = element.get("id")
        if not node_id:
            return None
        if element.getroottree().getroot() is not self._root_element:
            return None
        cached = self._cache.get(node_id)
        if cached is not None:
            return cached
        node = Node(element, self)
        self._cache[node_id] = node
        return node

    def get_node_by_id(self, node_id: str) -> Node | None:
        if not node_id:
            return None
        cached = self._cache.get(node_id)
        if cached is not None:
            return cached
        found = self._root_element.xpath("descendant-or-self::*[@id=$id]", id=node_id)
        return self._wrap_one(found[0]) if found else None

    def find(self, selector: str | None, context: Node | None = None) -> list[Node]:
        """Nodes matching a CSS selector below `context` (default: root)."""
        if not selector:
            return []
        if context is not None:
            return self.wrap(selectors.match(selector, context.element))
        # Document-wide search also considers the root element itself
        root = self._root_element
        found = selectors.match(selector, root)
        if selectors.matches_one(root, selector):
            found.insert(0, root)
        return self.wrap(found)
