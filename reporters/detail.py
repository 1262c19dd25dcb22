"""Detail document: one flat record per node, keyed by node id."""
from __future__ import annotations

import html
import logging
from typing import Any, Dict, List, Optional

from execution_tree import ExecutionNode
from reporters.base import ReportData, ReportDocument
from reporters.traversal import NodeVisitor, walk

LINE_BREAK = "<br/>"
NO_DURATION = "No duration recorded"

logger = logging.getLogger("run_reporter.report")

_PERIOD_UNITS = (
    ("hour", 3_600_000),
    ("minute", 60_000),
    ("second", 1_000),
    ("millisecond", 1),
)


def replace_newlines(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return text.replace("\r\n", "\n").replace("\n", LINE_BREAK)


def escape_text(text: Optional[str]) -> Optional[str]:
    """HTML-escape free text and turn newlines into line-break markers."""
    if text is None:
        return None
    return replace_newlines(html.escape(text))


def format_period(millis: int) -> str:
    """Spell out a duration, e.g. ``"2 minutes"`` or ``"1 second and 5 milliseconds"``."""
    remaining = max(0, int(millis))
    parts: List[str] = []
    for unit, size in _PERIOD_UNITS:
        amount, remaining = divmod(remaining, size)
        if amount:
            parts.append(f"{amount} {unit}" if amount == 1 else f"{amount} {unit}s")
    if not parts:
        return "0 milliseconds"
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]


def format_duration(millis: Optional[int]) -> str:
    return NO_DURATION if millis is None else format_period(millis)


def _exception_message(node: ExecutionNode) -> str:
    if node.result is None or node.result.thrown is None:
        return ""
    return escape_text(node.result.thrown.message) or ""


def _stack_trace(node: ExecutionNode) -> str:
    if node.result is None or node.result.thrown is None:
        return ""
    frames = node.result.thrown.stack_frames or []
    return "".join(escape_text(frame.strip()) + LINE_BREAK for frame in frames)


def _description(node: ExecutionNode) -> Optional[str]:
    if node.description is None:
        return None
    return escape_text(node.description.strip())


def build_detail_record(node: ExecutionNode) -> Dict[str, Any]:
    duration = node.result.running_duration_ms if node.result is not None else None
    return {
        "node_type": node.node_type.value if node.node_type is not None else None,
        "filename": node.filename,
        "result": node.status.value,
        "id": node.id,
        "exception_message": _exception_message(node),
        "stack_trace": _stack_trace(node),
        "running_duration_ms": duration,
        "running_duration": format_duration(duration),
        "method": replace_newlines(node.method_info) or "",
        "description": _description(node),
        "tags": sorted(t for t in (node.tags or ()) if t),
        "children": [
            {"result": child.status.value, "description": _description(child)}
            for child in node.children or []
        ],
    }


class _DetailVisitor(NodeVisitor):
    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}

    def enter(self, node: ExecutionNode) -> None:
        key = str(node.id)
        if key in self.records:
            logger.warning("Duplicate node id %s in run tree; keeping the first record", key)
            return
        self.records[key] = build_detail_record(node)


def build_detail_table(roots: List[ExecutionNode]) -> Dict[str, Dict[str, Any]]:
    """Records for every node, in pre-order, keyed by the string node id."""
    visitor = _DetailVisitor()
    walk(roots, visitor)
    return visitor.records


class DetailDocument(ReportDocument):
    """``var detail = {...};`` looked up by the viewer when a node is selected."""

    @property
    def filename(self) -> str:
        return "detail_data.js"

    @property
    def variable(self) -> str:
        return "detail"

    def build(self, data: ReportData) -> Dict[str, Dict[str, Any]]:
        return build_detail_table(data.root_nodes)
