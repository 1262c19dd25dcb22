"""Generic pre-order walk over execution trees."""
from __future__ import annotations

from typing import Iterable

from execution_tree import ExecutionNode


class NodeVisitor:
    """Callbacks for ``walk``; ``leave`` fires after all children were visited."""

    def enter(self, node: ExecutionNode) -> None:
        pass

    def leave(self, node: ExecutionNode) -> None:
        pass


def walk(roots: Iterable[ExecutionNode], visitor: NodeVisitor) -> None:
    """Visit every node under ``roots`` in document order."""
    for root in roots:
        _walk_node(root, visitor)


def _walk_node(node: ExecutionNode, visitor: NodeVisitor) -> None:
    visitor.enter(node)
    for child in node.children or []:
        _walk_node(child, visitor)
    visitor.leave(node)
