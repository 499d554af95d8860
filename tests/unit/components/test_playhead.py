"""
Tests for Playhead navigation.

Every move is checked through the change event it fires: which nodes are
left, which are entered, and the resulting root-to-head selection.
"""

import pytest
from lxml import etree

from docweave.dom import Document
from docweave.playhead import NavigationError, Playhead, PlayheadChange

LIBRARY = """
<library id="library">
  <book id="book1">
    <chapter id="chapter1"/>
    <chapter id="chapter2"/>
    <chapter id="chapter3"/>
  </book>
  <book id="book2">
    <chapter id="chapter4"><section id="s1"/><section id="s2"/></chapter>
  </book>
</library>
"""


def ids(nodes):
    return [n.id for n in nodes]


@pytest.fixture
def document():
    return Document(etree.fromstring(LIBRARY))


@pytest.fixture
def playhead(document):
    return Playhead(document)


@pytest.fixture
def changes(playhead):
    recorded: list[PlayheadChange] = []
    playhead.on("change", recorded.append)
    return recorded


class TestConstruction:
    def test_requires_document(self):
        with pytest.raises(ValueError):
            Playhead(None)

    def test_starts_empty(self, playhead):
        assert playhead.selection == ()
        assert playhead.head is None
        assert playhead.root is None


class TestDeltas:
    def test_first_move_enters_root(self, playhead, changes):
        head = playhead.navigate("chapter2")

        assert head.id == "chapter2"
        assert len(changes) == 1
        change = changes[0]
        assert ids(change.selected) == ["library", "book1", "chapter2"]
        assert change.deselected == ()
        assert change.origin is None
        assert change.target is head
        assert ids(playhead.selection) == ["library", "book1", "chapter2"]

    def test_first_move_to_root(self, playhead, changes):
        playhead.navigate("library")
        assert ids(changes[0].selected) == ["library"]
        assert ids(playhead.selection) == ["library"]

    def test_move_to_ancestor(self, playhead, changes):
        playhead.navigate("chapter2")
        playhead.exec("exit")

        change = changes[-1]
        assert ids(change.deselected) == ["chapter2"]
        assert change.selected == ()
        assert ids(playhead.selection) == ["library", "book1"]

    def test_move_to_descendant(self, playhead, changes):
        playhead.navigate("library")
        playhead.navigate("s2")

        assert ids(changes[-1].selected) == ["book2", "chapter4", "s2"]
        assert changes[-1].deselected == ()

    def test_divergent_move(self, playhead, changes):
        playhead.navigate("chapter2")
        playhead.navigate("s1")

        change = changes[-1]
        assert ids(change.deselected) == ["chapter2", "book1"]
        assert ids(change.selected) == ["book2", "chapter4", "s1"]
        assert ids(change.selection) == ["library", "book2", "chapter4", "s1"]
        assert change.origin.id == "chapter2"

    def test_move_to_head_is_silent(self, playhead, changes):
        playhead.navigate("chapter2")
        assert playhead.navigate("chapter2").id == "chapter2"
        assert len(changes) == 1

    def test_node_events_follow_delta(self, playhead):
        events = []
        playhead.on("exit", lambda node: events.append(("exit", node.id)))
        playhead.on("enter", lambda node: events.append(("enter", node.id)))
        playhead.on("change", lambda change: events.append(("change", change.target.id)))

        playhead.navigate("chapter2")
        events.clear()
        playhead.navigate("s1")

        assert events == [
            ("exit", "chapter2"), ("exit", "book1"),
            ("enter", "book2"), ("enter", "chapter4"), ("enter", "s1"),
            ("change", "s1"),
        ]

    def test_node_specific_events(self, playhead):
        seen = []
        playhead.on("enter:book1", lambda node: seen.append(("enter", ids(playhead.selection))))
        playhead.on("exit:book1", lambda node: seen.append(("exit", ids(playhead.selection))))

        playhead.navigate("chapter1")
        playhead.navigate("book2")
        playhead.navigate("s2")

        assert seen == [
            ("enter", ["library", "book1", "chapter1"]),
            ("exit", ["library", "book2"]),
        ]

    def test_no_node_events_for_silent_moves(self, playhead):
        playhead.navigate("chapter3")
        events = []
        playhead.on("enter", events.append)
        playhead.on("exit", events.append)
        playhead.next()
        playhead.navigate("chapter3")
        assert events == []

    def test_selection_stays_contiguous(self, playhead):
        for target in ["s2", "chapter1", "book2", "chapter3", "library", "s1"]:
            playhead.navigate(target)
            selection = playhead.selection
            assert selection[0] is playhead.document.root
            for parent, child in zip(selection, selection[1:]):
                assert child.parent is parent

    def test_navigate_accepts_node(self, document, playhead):
        node = document.get_node_by_id("chapter3")
        assert playhead.navigate(node) is node


class TestCommands:
    def test_reset(self, playhead):
        playhead.navigate("s1")
        assert playhead.reset().id == "library"
        assert ids(playhead.selection) == ["library"]

    def test_enter_and_exit(self, playhead):
        playhead.reset()
        assert playhead.enter().id == "book1"
        assert playhead.enter().id == "chapter1"
        assert playhead.enter() is None
        assert playhead.exit().id == "book1"

    def test_exit_at_root(self, playhead, changes):
        playhead.reset()
        assert playhead.exit() is None
        assert len(changes) == 1

    def test_next_and_previous(self, playhead):
        playhead.navigate("chapter1")
        assert playhead.next().id == "chapter2"
        assert playhead.next().id == "chapter3"
        assert playhead.previous().id == "chapter2"

    def test_next_on_last_sibling_is_noop(self, playhead, changes):
        playhead.navigate("chapter3")
        assert playhead.next() is None
        assert playhead.head.id == "chapter3"
        assert len(changes) == 1

    def test_previous_on_first_sibling_is_noop(self, playhead):
        playhead.navigate("chapter1")
        assert playhead.previous() is None
        assert playhead.head.id == "chapter1"

    def test_round_trip(self, playhead):
        playhead.navigate("chapter2")
        playhead.next()
        playhead.previous()
        assert ids(playhead.selection) == ["library", "book1", "chapter2"]

    def test_commands_on_empty_selection(self, playhead, changes):
        for command in (playhead.next, playhead.previous, playhead.enter,
                        playhead.exit, playhead.forward, playhead.backward):
            assert command() is None
        assert changes == []

    def test_forward_walks_preorder(self, playhead):
        playhead.reset()
        visited = [playhead.head.id]
        while playhead.forward() is not None:
            visited.append(playhead.head.id)
        assert visited == [
            "library", "book1", "chapter1", "chapter2", "chapter3",
            "book2", "chapter4", "s1", "s2",
        ]

    def test_backward(self, playhead):
        playhead.navigate("chapter2")
        assert playhead.backward().id == "chapter1"
        assert playhead.backward().id == "book1"
        assert playhead.backward().id == "library"
        assert playhead.backward() is None

    def test_play_without_ref_moves_forward(self, playhead):
        playhead.navigate("chapter3")
        assert playhead.play().id == "book2"

    def test_play_with_ref(self, playhead):
        assert playhead.play("s2").id == "s2"


class TestKeywords:
    def test_keyword_targets(self, playhead):
        playhead.navigate("chapter1")
        assert playhead.navigate("!next").id == "chapter2"
        assert playhead.navigate("!exit").id == "book1"
        assert playhead.navigate("!reset").id == "library"

    def test_unknown_keyword(self, playhead):
        with pytest.raises(NavigationError, match="Unknown keyword"):
            playhead.navigate("!jump")

    def test_exec_wraps_failures(self, playhead, monkeypatch):
        def broken():
            raise RuntimeError("boom")

        monkeypatch.setattr(playhead, "forward", broken)
        with pytest.raises(NavigationError, match='Keyword exec "!forward" failed: boom'):
            playhead.exec("forward")


class TestErrors:
    def test_unknown_id(self, playhead):
        with pytest.raises(NavigationError, match="Invalid target"):
            playhead.navigate("missing")

    def test_unsupported_target(self, playhead):
        with pytest.raises(NavigationError):
            playhead.navigate(42)

    def test_node_of_other_document(self, playhead):
        other = Document(etree.fromstring(LIBRARY))
        with pytest.raises(NavigationError):
            playhead.navigate(other.get_node_by_id("book1"))

    def test_failed_move_keeps_selection(self, playhead):
        playhead.navigate("chapter2")
        with pytest.raises(NavigationError):
            playhead.navigate("missing")
        assert ids(playhead.selection) == ["library", "book1", "chapter2"]

    def test_navigate_from_change_handler(self, playhead):
        errors = []

        def handler(change):
            try:
                playhead.navigate("book2")
            except NavigationError as e:
                errors.append(e)

        playhead.on("change", handler)
        playhead.navigate("chapter1")

        assert len(errors) == 1
        assert playhead.head.id == "chapter1"

    def test_navigate_from_enter_handler(self, playhead):
        errors = []

        def handler(node):
            try:
                playhead.navigate("book2")
            except NavigationError as e:
                errors.append(e)

        playhead.on("enter:chapter1", handler)
        playhead.navigate("chapter1")

        assert len(errors) == 1
        assert playhead.head.id == "chapter1"

    def test_navigating_again_after_handler(self, playhead, changes):
        playhead.navigate("chapter1")
        playhead.navigate("chapter2")
        assert len(changes) == 2
