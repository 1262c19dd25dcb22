"""Filesystem-backed loader for serialized execution trees."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import yaml

from exceptions import TreeLoadError, TreeValidationError
from execution_tree import (
    ExecutionNode,
    ExecutionResult,
    NodeResult,
    NodeType,
    ThrownFailure,
)


def _as_list(value: Any) -> List[str]:
    """Convert value to list of strings."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value]
    if isinstance(value, str):
        return [value]
    raise TreeLoadError(f"Expected string or list, got {type(value).__name__}")


def _as_set(value: Any) -> Set[str]:
    """Convert value to set of strings."""
    if value is None:
        return set()
    if isinstance(value, (list, set, tuple)):
        return {str(item) for item in value}
    if isinstance(value, str):
        return {value}
    raise TreeLoadError(f"Expected string, list, or set, got {type(value).__name__}")


def _parse_status(value: Any, node_id: Any) -> ExecutionResult:
    if value is None:
        return ExecutionResult.NOT_RUN
    try:
        return ExecutionResult(str(value).upper())
    except ValueError:
        raise TreeValidationError(f"Unknown result status: {value!r}", node_id=node_id, field="status") from None


def _parse_node_type(value: Any, node_id: Any) -> NodeType:
    try:
        return NodeType(str(value).lower())
    except ValueError:
        raise TreeValidationError(f"Unknown node type: {value!r}", node_id=node_id, field="type") from None


def _parse_result(data: Any, node_id: Any) -> NodeResult:
    if data is None:
        return NodeResult()
    if isinstance(data, str):
        return NodeResult(status=_parse_status(data, node_id))
    if not isinstance(data, dict):
        raise TreeValidationError("Result must be a status string or mapping", node_id=node_id, field="result")

    thrown = None
    failure = data.get("failure")
    if failure:
        if not isinstance(failure, dict):
            raise TreeValidationError("Failure must be a mapping", node_id=node_id, field="failure")
        thrown = ThrownFailure(
            message=failure.get("message"),
            exception_type=failure.get("type"),
            stack_frames=_as_list(failure.get("stack")),
        )

    duration = data.get("duration_ms")
    return NodeResult(
        status=_parse_status(data.get("status"), node_id),
        thrown=thrown,
        running_duration_ms=int(duration) if duration is not None else None,
    )


def _parse_node(data: Dict[str, Any], seen_ids: Set[int]) -> ExecutionNode:
    """Parse a mapping (and its children) into an ExecutionNode."""
    if not isinstance(data, dict):
        raise TreeLoadError("Node payload must be a mapping")

    raw_id = data.get("id")
    try:
        node_id = int(raw_id)
    except (TypeError, ValueError):
        raise TreeValidationError(f"Node id must be an integer, got {raw_id!r}", node_id=raw_id, field="id") from None
    if node_id in seen_ids:
        raise TreeValidationError(f"Duplicate node id: {node_id}", node_id=node_id, field="id")
    seen_ids.add(node_id)

    row_number = data.get("row_number")
    node = ExecutionNode(
        id=node_id,
        node_type=_parse_node_type(data.get("type", "step"), node_id),
        filename=data.get("filename"),
        description=data.get("description"),
        scenario_name=data.get("scenario_name"),
        is_outline_scenario=bool(data.get("outline", False)),
        row_number=int(row_number) if row_number is not None else None,
        feature=data.get("feature"),
        line=data.get("line"),
        tags=_as_set(data.get("tags")),
        method_info=data.get("method"),
        result=_parse_result(data.get("result"), node_id),
    )

    children = data.get("children") or []
    if not isinstance(children, list):
        raise TreeValidationError("Children must be a list", node_id=node_id, field="children")
    for child in children:
        node.add_child(_parse_node(child, seen_ids))
    return node


def parse_tree(data: Any) -> List[ExecutionNode]:
    """Build root nodes from ``{"roots": [...]}``, a list of nodes, or one node."""
    if isinstance(data, dict) and "roots" in data:
        roots = data["roots"]
    elif isinstance(data, list):
        roots = data
    else:
        roots = [data]
    if not isinstance(roots, list):
        raise TreeLoadError("'roots' must be a list")

    seen_ids: Set[int] = set()
    return [_parse_node(root, seen_ids) for root in roots]


def load_tree_file(path: Path) -> List[ExecutionNode]:
    """Load root nodes from a tree file (YAML or JSON)."""
    try:
        raw = path.read_text(encoding="utf-8")
        if path.suffix.lower() in {".yml", ".yaml"}:
            data = yaml.safe_load(raw)
        else:
            data = json.loads(raw)
        return parse_tree(data)
    except TreeLoadError:
        raise
    except Exception as exc:
        raise TreeLoadError(f"Failed to load tree file: {exc}", file_path=str(path)) from exc


def load_tree_files(paths: Iterable[Path]) -> List[ExecutionNode]:
    """Load and concatenate the roots of several tree files, ids unique across all."""
    roots: List[ExecutionNode] = []
    seen: Set[int] = set()
    for path in paths:
        for root in load_tree_file(path):
            for node in root.iter_nodes():
                if node.id in seen:
                    raise TreeValidationError(
                        f"Duplicate node id {node.id} in {path}", node_id=node.id, field="id"
                    )
                seen.add(node.id)
            roots.append(root)
    return roots


def tree_to_dict(node: ExecutionNode) -> Dict[str, Any]:
    """Serialize a node and its subtree in the format ``parse_tree`` reads."""
    data: Dict[str, Any] = {"id": node.id, "type": node.node_type.value}
    optional = {
        "filename": node.filename,
        "description": node.description,
        "scenario_name": node.scenario_name,
        "row_number": node.row_number,
        "feature": node.feature,
        "line": node.line,
        "method": node.method_info,
    }
    data.update({k: v for k, v in optional.items() if v is not None})
    if node.is_outline_scenario:
        data["outline"] = True
    if node.tags:
        data["tags"] = sorted(node.tags)

    if node.result is not None:
        result: Dict[str, Any] = {"status": node.result.status.value}
        if node.result.running_duration_ms is not None:
            result["duration_ms"] = node.result.running_duration_ms
        thrown = node.result.thrown
        if thrown is not None:
            result["failure"] = {
                "message": thrown.message,
                "type": thrown.exception_type,
                "stack": list(thrown.stack_frames),
            }
        data["result"] = result

    if node.children:
        data["children"] = [tree_to_dict(child) for child in node.children]
    return data


def validate_tree(data: Any) -> List[str]:
    """
    Validate tree data without loading.

    Returns list of validation errors (empty if valid).
    """
    errors: List[str] = []
    seen: Set[Any] = set()

    if isinstance(data, dict) and "roots" in data:
        roots = data["roots"]
    elif isinstance(data, list):
        roots = data
    else:
        roots = [data]
    if not isinstance(roots, list):
        return ["'roots' must be a list"]

    statuses = {r.value for r in ExecutionResult}
    node_types = {t.value for t in NodeType}

    def check(node: Any, where: str) -> None:
        if not isinstance(node, dict):
            errors.append(f"{where}: node must be a mapping")
            return
        node_id: Optional[Any] = node.get("id")
        if node_id is None:
            errors.append(f"{where}: missing required field: id")
        elif node_id in seen:
            errors.append(f"{where}: duplicate id {node_id}")
        else:
            seen.add(node_id)

        node_type = node.get("type")
        if node_type is not None and str(node_type).lower() not in node_types:
            errors.append(f"{where}: unknown type {node_type!r}")

        result = node.get("result")
        status = result.get("status") if isinstance(result, dict) else result
        if status is not None and str(status).upper() not in statuses:
            errors.append(f"{where}: unknown status {status!r}")

        tags = node.get("tags")
        if tags is not None and not isinstance(tags, (str, list)):
            errors.append(f"{where}: tags must be a string or list")

        children = node.get("children")
        if children is None:
            return
        if not isinstance(children, list):
            errors.append(f"{where}: children must be a list")
            return
        for index, child in enumerate(children):
            check(child, f"{where}.children[{index}]")

    for index, root in enumerate(roots):
        check(root, f"roots[{index}]")
    return errors
