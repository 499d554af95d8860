"""
CLI interface for docweave.

Loads a document (resolving its includes), prints its outline and optionally
replays navigation commands, printing every enter/exit they cause.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

from .config import get_config
from .dom import Document, Node
from .loader import LoadError, load_document
from .playhead import NavigationError, Playhead, PlayheadChange


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="docweave",
        description="Assemble a document from its fragments and walk through it",
    )

    parser.add_argument(
        "source",
        help="Root document location (file path or http(s) URL)",
    )

    parser.add_argument(
        "--lang",
        "-l",
        type=str,
        help="Language for include filtering and @lang expansion",
    )

    parser.add_argument(
        "--go",
        "-g",
        action="append",
        default=[],
        metavar="TARGET",
        help="Navigate to a node id or !keyword (repeatable, applied in order)",
    )

    parser.add_argument(
        "--depth",
        "-d",
        type=int,
        help="Limit the outline to this many levels",
    )

    parser.add_argument(
        "--no-outline",
        action="store_false",
        dest="outline",
        default=True,
        help="Do not print the document outline",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log loader activity to stderr",
    )

    return parser.parse_args(args)


def render_outline(document: Document, depth: int | None = None) -> str:
    """Indented `name#id [type]` lines for the document's structural nodes."""
    lines: list[str] = []

    def walk(node: Node, level: int) -> None:
        if depth is not None and level >= depth:
            return
        suffix = f" [{node.type}]" if node.is_content else ""
        lines.append(f"{'  ' * level}{node.name}#{node.id}{suffix}")
        for child in node.children:
            walk(child, level + 1)

    walk(document.root, 0)
    return "\n".join(lines)


def format_change(change: PlayheadChange) -> str:
    """Exits (`-`), then entries (`+`), then the new head (`@`)."""
    lines = [f"- {node.id}" for node in change.deselected]
    lines += [f"+ {node.id}" for node in change.selected]
    lines.append(f"@ {change.target.id}")
    return "\n".join(lines)


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parsed = parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    config = get_config()
    if parsed.lang:
        config = replace(config, loader=replace(config.loader, lang=parsed.lang))

    try:
        document = load_document(parsed.source, config=config)
    except LoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if parsed.outline:
        print(render_outline(document, parsed.depth))

    if parsed.go:
        playhead = Playhead(document)
        playhead.on("change", lambda change: print(format_change(change)))
        for target in parsed.go:
            try:
                playhead.navigate(target)
            except NavigationError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
