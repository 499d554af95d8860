"""
Selector matching over lxml trees.

CSS selectors are translated to XPath by cssselect and evaluated by lxml.
Matching semantics follow the usual query-selector contract: `match` never
returns the context element itself, only its descendants, in document order.
"""

from __future__ import annotations

from functools import lru_cache

from cssselect import GenericTranslator
from cssselect import SelectorError as _CssSelectorError
from lxml import etree

_translator = GenericTranslator()


class SelectorError(ValueError):
    """Raised for selectors cssselect cannot translate."""


@lru_cache(maxsize=256)
def _compile(selector: str, prefix: str) -> etree.XPath:
    try:
        expression = _translator.css_to_xpath(selector, prefix=prefix)
    except _CssSelectorError as e:
        raise SelectorError(f"Invalid selector {selector!r}: {e}") from e
    return etree.XPath(expression)


def match(selector: str | None, context) -> list:
    """Return descendants of `context` matching `selector`."""
    if not selector or context is None:
        return []
    if isinstance(context, etree._ElementTree):
        context = context.getroot()
    found = _compile(selector, "descendant::")(context)
    return [el for el in found if isinstance(el, etree._Element)]


def matches_one(element, selector: str | None) -> bool:
    """True if `element` itself matches `selector`."""
    if not selector or element is None or not isinstance(element.tag, str):
        return False
    return bool(_compile(selector, "self::")(element))
