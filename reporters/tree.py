"""Navigation tree document: nested titles, icons and open hints."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from execution_tree import ExecutionNode, ExecutionResult
from reporters.base import ReportData, ReportDocument
from reporters.traversal import NodeVisitor, walk

DEFAULT_TREE_TITLE = "Execution tests"
ROOT_FALLBACK_TITLE = "Execution root"


def icon_for(result: ExecutionResult) -> str:
    """Icon key used by the report viewer for a result."""
    match result:
        case ExecutionResult.PASSED:
            return "imgP"
        case ExecutionResult.NOT_RUN:
            return "imgNR"
        case ExecutionResult.PARSE_FAILURE:
            return "imgPF"
        case ExecutionResult.FAILED:
            return "imgF"
    raise ValueError(f"No icon for result {result!r}")


def describe_node(node: ExecutionNode) -> str:
    """Display title for a node in the navigation tree."""
    parent = node.parent
    if parent is None:
        return node.line or node.description or ROOT_FALLBACK_TITLE

    parts: List[str] = []
    if parent.is_outline_scenario and node.row_number is not None:
        parts.append(f"{node.row_number} {parent.scenario_name}:")

    if node.feature is not None:
        parts.append(node.feature)
    elif node.scenario_name is not None:
        parts.append("Scenario #: " if node.is_outline_scenario else "Scenario: ")
        parts.append(node.scenario_name)

    if node.line is not None:
        parts.append(node.line)
    return "".join(parts)


class _Frame:
    __slots__ = ("entry", "children", "in_error")

    def __init__(self, entry: Optional[Dict[str, Any]], in_error: bool = False) -> None:
        self.entry = entry
        self.children: List[Dict[str, Any]] = []
        self.in_error = in_error


class _NestingVisitor(NodeVisitor):
    """Builds the nested child arrays with an explicit stack.

    Error state is folded upwards in ``leave``, so every node is inspected
    once per walk. ``in_error`` is true once any visited subtree failed.
    """

    def __init__(self) -> None:
        self._top = _Frame(None)
        self._stack: List[_Frame] = [self._top]

    @property
    def top(self) -> List[Dict[str, Any]]:
        return self._top.children

    @property
    def in_error(self) -> bool:
        return self._top.in_error

    def enter(self, node: ExecutionNode) -> None:
        entry: Dict[str, Any] = {
            "data": {
                "title": describe_node(node),
                "attr": {"id": str(node.id)},
                "icon": icon_for(node.status),
            }
        }
        self._stack[-1].children.append(entry)
        self._stack.append(_Frame(entry, node.status.is_failure))

    def leave(self, node: ExecutionNode) -> None:
        frame = self._stack.pop()
        if frame.children:
            if frame.in_error:
                frame.entry["state"] = "open"
            frame.entry["children"] = frame.children
        if frame.in_error:
            self._stack[-1].in_error = True


def build_navigation_tree(
    roots: Iterable[ExecutionNode], title: Optional[str] = None
) -> Dict[str, Any]:
    """Nested tree of ``roots`` under a wrapper carrying the aggregate icon."""
    visitor = _NestingVisitor()
    walk(roots, visitor)
    in_error = visitor.in_error

    wrapper: Dict[str, Any] = {
        "data": {
            "title": title or DEFAULT_TREE_TITLE,
            "attr": {"id": "0"},
            "icon": icon_for(ExecutionResult.FAILED if in_error else ExecutionResult.PASSED),
        }
    }
    if in_error:
        wrapper["state"] = "open"
    wrapper["children"] = visitor.top
    return wrapper


class TreeDocument(ReportDocument):
    """``var treeData = {...};`` consumed by the report's tree widget."""

    @property
    def filename(self) -> str:
        return "report_data.js"

    @property
    def variable(self) -> str:
        return "treeData"

    def build(self, data: ReportData) -> Dict[str, Any]:
        return build_navigation_tree(data.root_nodes, data.title)
