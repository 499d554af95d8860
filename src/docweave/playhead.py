"""
Playhead: a cursor over an assembled Document.

The playhead keeps the selection path from the document root down to the
current node (the head). Every move computes which nodes are left
(`deselected`, innermost first) and which are entered (`selected`, outermost
first), applies that delta to the path and fires a single `change` event.

Per-node events are fired from the same delta just before `change`:
`exit` and `exit:<id>` for every left node, then `enter` and `enter:<id>`
for every entered node. Their payload is the Node.

Rules:
- The document root is always selection[0]; the first move enters it.
- Moves without a destination (next() on the last sibling, exit() at the
  root, ...) return None and fire nothing.
- Bad targets and unknown keywords raise NavigationError.
- Moving from inside a `change` handler raises NavigationError.
"""

from __future__ import annotations

from dataclasses import dataclass

from .dom import Document, Node
from .events import Emitter

KEYWORD_PREFIX = "!"

KEYWORDS = ("reset", "play", "next", "previous", "enter", "exit", "forward", "backward")


class NavigationError(ValueError):
    """Raised for targets that cannot be resolved or reached."""


@dataclass(frozen=True)
class PlayheadChange:
    """Payload of the `change` event."""
    selected: tuple[Node, ...]
    deselected: tuple[Node, ...]
    selection: tuple[Node, ...]
    origin: Node | None
    target: Node


class Playhead(Emitter):
    """Stateful navigation over a Document."""

    def __init__(self, document: Document):
        if document is None:
            raise ValueError("Playhead requires a document")
        super().__init__()
        self._document = document
        self._selection: list[Node] = []
        self._navigating = False

    @property
    def document(self) -> Document:
        return self._document

    @property
    def selection(self) -> tuple[Node, ...]:
        """Selected nodes from root to head."""
        return tuple(self._selection)

    @property
    def head(self) -> Node | None:
        return self._selection[-1] if self._selection else None

    @property
    def root(self) -> Node | None:
        return self._selection[0] if self._selection else None

    # -- commands --

    def reset(self) -> Node | None:
        """Go to the document root."""
        return self.navigate(self._document.root)

    def play(self, ref: Node | str | None = None) -> Node | None:
        """Go to `ref`, or move forward when no reference is given."""
        if not ref:
            return self.forward()
        return self.navigate(ref)

    def enter(self) -> Node | None:
        """Go to the head's first child."""
        if self.head is None:
            return None
        target = self.head.first
        return self.navigate(target) if target is not None else None

    def exit(self) -> Node | None:
        """Go to the head's parent."""
        if self.head is None:
            return None
        target = self.head.parent
        return self.navigate(target) if target is not None else None

    def next(self) -> Node | None:
        if self.head is None:
            return None
        target = self.head.next
        return self.navigate(target) if target is not None else None

    def previous(self) -> Node | None:
        if self.head is None:
            return None
        target = self.head.previous
        return self.navigate(target) if target is not None else None

    def forward(self) -> Node | None:
        """Next node in document order (preorder)."""
        node = self.head
        if node is None:
            return None
        target = node.first or node.next
        ancestor = node.parent
        while target is None and ancestor is not None:
            target = ancestor.next
            ancestor = ancestor.parent
        return self.navigate(target) if target is not None else None

    def backward(self) -> Node | None:
        """Previous sibling, or the parent when there is none."""
        node = self.head
        if node is None:
            return None
        target = node.previous or node.parent
        return self.navigate(target) if target is not None else None

    def exec(self, keyword: str) -> Node | None:
        """Run a command by keyword (without the `!` prefix)."""
        if keyword not in KEYWORDS:
            raise NavigationError(f'Unknown keyword "!{keyword}"')
        try:
            return getattr(self, keyword)()
        except Exception as e:
            raise NavigationError(f'Keyword exec "!{keyword}" failed: {e}') from e

    # -- navigation --

    def resolve(self, target: Node | str) -> Node:
        """Map a Node or id to a Node of this document."""
        if isinstance(target, Node):
            node = self._document.wrap(target)
        elif isinstance(target, str):
            node = self._document.get_node_by_id(target)
        else:
            node = None
        if node is None:
            raise NavigationError(f"Invalid target {target!r}")
        return node

    def navigate(self, target: Node | str) -> Node | None:
        """
        Move the head to `target` (Node, id, or `!keyword`).

        Returns the new head.
        """
        if isinstance(target, str) and target.startswith(KEYWORD_PREFIX):
            return self.exec(target[len(KEYWORD_PREFIX):])

        if self._navigating:
            raise NavigationError("Cannot navigate while a change is being notified")

        tnode = self.resolve(target)
        origin = self.head
        if tnode is origin:
            return origin

        selected: list[Node] = []
        deselected: list[Node] = []

        cnode = origin
        if cnode is None:
            # Empty selection: the root counts as entered
            cnode = self._document.root
            selected.append(cnode)

        if cnode is not tnode:
            if cnode.is_ancestor_of(tnode):
                selected.extend(self._descend(cnode, tnode))
            elif tnode.is_ancestor_of(cnode):
                deselected.extend(self._ascend(cnode, tnode))
            else:
                common = cnode.parent
                deselected.append(cnode)
                while common is not None and not common.is_ancestor_of(tnode):
                    deselected.append(common)
                    common = common.parent
                if common is None:
                    raise NavigationError(f"Target {tnode!r} is not reachable from {cnode!r}")
                selected.extend(self._descend(common, tnode))

        for _ in deselected:
            self._selection.pop()
        self._selection.extend(selected)

        change = PlayheadChange(
            selected=tuple(selected),
            deselected=tuple(deselected),
            selection=tuple(self._selection),
            origin=origin,
            target=tnode,
        )
        self._navigating = True
        try:
            for node in deselected:
                self.trigger("exit", node)
                self.trigger(f"exit:{node.id}", node)
            for node in selected:
                self.trigger("enter", node)
                self.trigger(f"enter:{node.id}", node)
            self.trigger("change", change)
        finally:
            self._navigating = False

        return self.head

    @staticmethod
    def _descend(start: Node, target: Node) -> list[Node]:
        """Nodes entered walking from `start` down to `target`, outermost first."""
        path = []
        node = start
        while node is not target:
            node = next((c for c in node.children if c is target or c.is_ancestor_of(target)), None)
            if node is None:
                raise NavigationError(f"Target {target!r} is not reachable from {start!r}")
            path.append(node)
        return path

    @staticmethod
    def _ascend(start: Node, target: Node) -> list[Node]:
        """Nodes left walking from `start` up to `target`, innermost first."""
        path = []
        node = start
        while node is not target:
            path.append(node)
            node = node.parent
        return path
