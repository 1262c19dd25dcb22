"""Typed objects for a hierarchical execution run."""
from __future__ import annotations

import traceback
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Set


class ExecutionResult(str, Enum):
    """Outcome of a single execution node."""
    NOT_RUN = "NOT_RUN"
    PASSED = "PASSED"
    FAILED = "FAILED"
    PARSE_FAILURE = "PARSE_FAILURE"

    @property
    def is_failure(self) -> bool:
        return self in (ExecutionResult.FAILED, ExecutionResult.PARSE_FAILURE)


class NodeType(str, Enum):
    """Kind of unit a node represents in the run tree."""
    ROOT = "root"
    FEATURE = "feature"
    SCENARIO = "scenario"
    OUTLINE_SCENARIO = "outline_scenario"
    OUTLINE_ROW = "outline_row"
    STEP = "step"


@dataclass
class ThrownFailure:
    """Failure detail captured from an exception raised by a step."""

    message: Optional[str]
    exception_type: Optional[str] = None
    stack_frames: List[str] = field(default_factory=list)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ThrownFailure":
        frames = [
            f"{frame.filename}:{frame.lineno} in {frame.name}"
            for frame in traceback.extract_tb(exc.__traceback__)
        ]
        return cls(
            message=str(exc),
            exception_type=type(exc).__name__,
            stack_frames=frames,
        )


@dataclass
class NodeResult:
    """Result state of a node; mutated by the runner while it executes."""

    status: ExecutionResult = ExecutionResult.NOT_RUN
    thrown: Optional[ThrownFailure] = None
    running_duration_ms: Optional[int] = None


@dataclass(eq=False)
class ExecutionNode:
    """One unit in the run result tree (root, feature, scenario, row or step)."""

    id: int
    node_type: NodeType
    filename: Optional[str] = None
    description: Optional[str] = None
    scenario_name: Optional[str] = None
    is_outline_scenario: bool = False
    row_number: Optional[int] = None
    feature: Optional[str] = None
    line: Optional[str] = None
    tags: Set[str] = field(default_factory=set)
    method_info: Optional[str] = None
    result: Optional[NodeResult] = field(default_factory=NodeResult)
    children: List["ExecutionNode"] = field(default_factory=list)
    _parent_ref: Optional["weakref.ReferenceType[ExecutionNode]"] = field(
        default=None, repr=False
    )

    @property
    def parent(self) -> Optional["ExecutionNode"]:
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def status(self) -> ExecutionResult:
        """Result status, treating a missing result as not run."""
        if self.result is None:
            return ExecutionResult.NOT_RUN
        return self.result.status

    def add_child(self, child: "ExecutionNode") -> "ExecutionNode":
        child._parent_ref = weakref.ref(self)
        self.children.append(child)
        return child

    def has_children(self) -> bool:
        return bool(self.children)

    def has_error(self) -> bool:
        """True if this node or any descendant failed."""
        return any(node.status.is_failure for node in self.iter_nodes())

    def iter_nodes(self) -> Iterator["ExecutionNode"]:
        """Yield this node and all descendants in pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def node_count(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    def find(self, node_id: int) -> Optional["ExecutionNode"]:
        for node in self.iter_nodes():
            if node.id == node_id:
                return node
        return None


@dataclass
class RunFailure:
    """Entry in a runner's failure list."""

    node_id: int
    message: str
    is_setup_or_teardown: bool = False

    @classmethod
    def from_node(cls, node: ExecutionNode, is_setup_or_teardown: bool = False) -> "RunFailure":
        message = ""
        if node.result is not None and node.result.thrown is not None:
            message = node.result.thrown.message or ""
        return cls(node_id=node.id, message=message, is_setup_or_teardown=is_setup_or_teardown)
