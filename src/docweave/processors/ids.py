"""
Id assignment.

Every element needs an `id` before it can be wrapped into a Node. Missing
ids are generated from an explicit IdGenerator, so two Loaders never share a
counter unless they are given the same generator.
"""

from __future__ import annotations

import logging
import string

from ..dom import is_element
from .base import Processor, yield_every

logger = logging.getLogger(__name__)

DIGITS = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    """Non-negative integer to lowercase base-36."""
    if value < 0:
        raise ValueError(f"Expected non-negative integer, got {value}")
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(DIGITS[rem])
    return "".join(reversed(out))


class IdGenerator:
    """Incremental base-36 id source."""

    def __init__(self, prefix: str = "", start: int = 1):
        self.prefix = prefix
        self._start = start
        self._counter = start

    def next(self) -> str:
        value = self._counter
        self._counter += 1
        return f"{self.prefix}{to_base36(value)}"

    def reset(self) -> None:
        self._counter = self._start


class IdProcessor(Processor):
    """Gives every element without an id a unique generated one."""

    def __init__(self, generator: IdGenerator | None = None, max_iterations: int = 100):
        self.generator = generator or IdGenerator()
        self.max_iterations = max_iterations

    @property
    def name(self) -> str:
        return "id"

    async def process(self, tree) -> None:
        elements = [el for el in tree.iter() if is_element(el)]
        in_use = {el.get("id") for el in elements if el.get("id")}
        missing = [el for el in elements if not el.get("id")]

        async for el in yield_every(missing, self.max_iterations):
            new_id = self.generator.next()
            while new_id in in_use:
                new_id = self.generator.next()
            in_use.add(new_id)
            el.set("id", new_id)

        logger.debug("assigned %d ids", len(missing))
        return None
