"""
Metadata extraction.

Two sources of metadata are collected into `data["meta"][node_id]`:

- `<metadata>` blocks: each child element becomes a key whose value is the
  child's inner markup; the block is attached to its parent node and removed
  from the tree.
- `meta-<key>` attributes on any element; they are removed after reading.

Nodes of type `html` are content, so neither they nor their descendants are
scanned.
"""

from __future__ import annotations

import logging
from typing import Any

from ..dom import detach, inner_markup, is_element
from .base import Processor, yield_every

logger = logging.getLogger(__name__)

META_ATTR_PREFIX = "meta-"

SCAN_XPATH = (
    "descendant-or-self::*"
    "[not(@type='html') and not(ancestor::*[@type='html'])"
    " and not(ancestor::*[local-name()=$tag])]"
)


class MetadataProcessor(Processor):
    """Collects node metadata and strips it from the tree."""

    def __init__(self, max_iterations: int = 100, tag: str = "metadata"):
        self.max_iterations = max_iterations
        self.tag = tag

    @property
    def name(self) -> str:
        return "meta"

    async def process(self, tree) -> dict[str, Any]:
        data: dict[str, dict[str, str]] = {}
        nodes = tree.xpath(SCAN_XPATH, tag=self.tag)
        total = len(nodes)

        async for node in yield_every(nodes, self.max_iterations):
            if node.tag == self.tag:
                node_id, values = self.parse_metadata_node(node)
            else:
                node_id, values = self.parse_meta_attributes(node)
            if node_id and values:
                data.setdefault(node_id, {}).update(values)

        logger.debug("metadata: scanned %d nodes, %d with data", total, len(data))
        return {self.name: data}

    def parse_metadata_node(self, node) -> tuple[str | None, dict[str, str]]:
        parent = node.getparent()
        if parent is None:
            return None, {}
        values = {
            child.tag: inner_markup(child).strip()
            for child in node
            if is_element(child)
        }
        detach(node)
        return parent.get("id"), values

    def parse_meta_attributes(self, node) -> tuple[str | None, dict[str, str]]:
        values = {}
        for key in list(node.attrib):
            if key.startswith(META_ATTR_PREFIX):
                values[key[len(META_ATTR_PREFIX):]] = node.get(key)
                del node.attrib[key]
        return node.get("id"), values
