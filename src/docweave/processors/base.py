"""
Base processor interface and pipeline.

A processor is a transform run once over the fully merged tree before a
Document is built. Each one may rewrite the tree and may return data that
ends up in `Document.data` under its namespace.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

logger = logging.getLogger(__name__)


class Processor(ABC):
    """Base class for content processors."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Namespace of the data this processor produces."""
        ...

    @abstractmethod
    async def process(self, tree) -> Mapping[str, Any] | None:
        """
        Process the working tree in place.

        Returns None or a mapping to merge into the document data. Long walks
        should yield to the event loop (see `yield_every`).
        """
        ...


async def yield_every(items: Iterable, budget: int):
    """Iterate items, giving control back to the event loop every `budget` items."""
    budget = max(1, budget)
    for i, item in enumerate(items, 1):
        yield item
        if i % budget == 0:
            await asyncio.sleep(0)


class Pipeline:
    """Ordered processors, run strictly one after another."""

    def __init__(self, processors: Iterable[Processor] = ()):
        self._processors: list[Processor] = list(processors)

    def register(self, processor: Processor) -> None:
        """Append a processor to the end of the pipeline."""
        self._processors.append(processor)

    @property
    def processors(self) -> list[Processor]:
        return list(self._processors)

    def __len__(self) -> int:
        return len(self._processors)

    async def run(self, tree) -> dict[str, Any]:
        """Run every processor over `tree` and return the merged data."""
        data: dict[str, Any] = {}
        for index, processor in enumerate(self._processors):
            if index:
                # Each processor starts on a fresh event-loop tick
                await asyncio.sleep(0)
            logger.debug("processor %d/%d: %s", index + 1, len(self._processors), processor.name)
            output = await processor.process(tree)
            if output:
                data.update(output)
        return data
