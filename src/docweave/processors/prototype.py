"""
Prototype rules: attribute cascades written as CSS-like blocks.

    <section>
      <prototype>
        chapter { layout: wide; }
        chapter.intro, page { audio: "!off"; }
      </prototype>
      ...
    </section>

Each `<prototype>` is removed from the tree and its rules are applied to the
matching nodes inside its parent (the parent itself included).

Precedence, strongest first:
1. `!value` (important): always written, the `!` is stripped
2. attributes written in the source document
3. rules of inner prototypes, then rules of outer prototypes
   (later rules win over earlier ones within the same prototype)
"""

from __future__ import annotations

import logging
import re
from typing import Any

from .. import selectors
from ..dom import detach
from .base import Processor, yield_every

logger = logging.getLogger(__name__)

COMMENT_PATTERN = re.compile(r"/\*.*?\*/", re.DOTALL)
RULE_PATTERN = re.compile(r"([^{}]+)\{([^{}]*)\}")

IMPORTANT_PREFIX = "!"

Rules = dict[str, dict[str, str]]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def parse_rules(source: str) -> Rules:
    """Parse `selector { key: value; ... }` blocks into {selector: {key: value}}."""
    rules: Rules = {}
    source = COMMENT_PATTERN.sub("", source or "")
    for m in RULE_PATTERN.finditer(source):
        selector = " ".join(m.group(1).split())
        if not selector:
            continue
        declarations = rules.setdefault(selector, {})
        for declaration in m.group(2).split(";"):
            if ":" not in declaration:
                continue
            key, value = declaration.split(":", 1)
            key = key.strip()
            if key:
                declarations[key] = _unquote(value.strip())
    return rules


class PrototypeProcessor(Processor):
    """Extracts `<prototype>` blocks and applies their attribute rules."""

    def __init__(self, max_iterations: int = 100, tag: str = "prototype"):
        self.max_iterations = max_iterations
        self.tag = tag

    @property
    def name(self) -> str:
        return "prototype"

    async def process(self, tree) -> dict[str, Any]:
        found = tree.xpath("descendant-or-self::*[local-name()=$tag]", tag=self.tag)
        extracted = []

        async for node in yield_every(found, self.max_iterations):
            parent = node.getparent()
            if parent is None:
                continue
            rules = parse_rules("".join(node.itertext()))
            detach(node)
            extracted.append((parent, rules))

        # Outer scopes first so inner prototypes override them
        extracted.sort(key=lambda item: sum(1 for _ in item[0].iterancestors()))

        written: set[tuple[str, str]] = set()
        async for scope, rules in yield_every(extracted, self.max_iterations):
            self.apply_rules(scope, rules, written)

        logger.debug("prototype: applied %d blocks", len(extracted))
        return {self.name: {scope.get("id"): rules for scope, rules in extracted if scope.get("id")}}

    def apply_rules(self, scope, rules: Rules, written: set[tuple[str, str]]) -> None:
        """
        Apply rules inside `scope`.

        `written` tracks attributes set by earlier prototypes, which later
        (more specific) rules may replace; authored attributes are kept.
        """
        paths = scope.getroottree()
        for selector, attrs in rules.items():
            try:
                targets = selectors.match(selector, scope)
                if selectors.matches_one(scope, selector):
                    targets.insert(0, scope)
            except selectors.SelectorError as e:
                logger.warning("prototype: skipping rule %r: %s", selector, e)
                continue

            for target in targets:
                for key, value in attrs.items():
                    slot = (paths.getpath(target), key)
                    if value.startswith(IMPORTANT_PREFIX):
                        target.set(key, value[len(IMPORTANT_PREFIX):])
                        written.discard(slot)
                    elif not target.get(key) or slot in written:
                        target.set(key, value)
                        written.add(slot)
