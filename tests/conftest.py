"""Pytest fixtures for run reporter tests."""
from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

import pytest

from execution_tree import (
    ExecutionNode,
    ExecutionResult,
    NodeResult,
    NodeType,
    RunFailure,
    ThrownFailure,
)


def build_simple_tree() -> ExecutionNode:
    """Root -> tagged feature -> one passing and one failing scenario."""
    root = ExecutionNode(
        id=1,
        node_type=NodeType.ROOT,
        description="Run of smoke suite",
        result=NodeResult(status=ExecutionResult.FAILED, running_duration_ms=1500),
    )
    feature = root.add_child(ExecutionNode(
        id=2,
        node_type=NodeType.FEATURE,
        filename="login.feature",
        feature="Feature: Login",
        tags={"smoke"},
        result=NodeResult(status=ExecutionResult.FAILED, running_duration_ms=1500),
    ))
    feature.add_child(ExecutionNode(
        id=3,
        node_type=NodeType.SCENARIO,
        scenario_name='Valid "admin" login',
        description="Admin logs in\nand sees the dashboard",
        tags={"fast"},
        result=NodeResult(status=ExecutionResult.PASSED, running_duration_ms=500),
    ))
    feature.add_child(ExecutionNode(
        id=4,
        node_type=NodeType.SCENARIO,
        scenario_name="Locked account",
        method_info="LoginSteps.check_login()",
        result=NodeResult(
            status=ExecutionResult.FAILED,
            running_duration_ms=1000,
            thrown=ThrownFailure(
                message='expected <ok>\nbut was "locked"',
                exception_type="AssertionError",
                stack_frames=["steps.py:10 in check_login", "runner.py:88 in run_step"],
            ),
        ),
    ))
    return root


def build_outline_tree() -> ExecutionNode:
    """Root -> feature -> outline scenario with one passed and one unrun row."""
    root = ExecutionNode(id=10, node_type=NodeType.ROOT, line="Nightly")
    feature = root.add_child(ExecutionNode(
        id=11,
        node_type=NodeType.FEATURE,
        feature="Feature: Search",
        tags={"search"},
        result=NodeResult(status=ExecutionResult.PASSED),
    ))
    outline = feature.add_child(ExecutionNode(
        id=12,
        node_type=NodeType.OUTLINE_SCENARIO,
        scenario_name="Find by term",
        is_outline_scenario=True,
        result=NodeResult(status=ExecutionResult.PASSED),
    ))
    outline.add_child(ExecutionNode(
        id=13,
        node_type=NodeType.OUTLINE_ROW,
        row_number=1,
        result=NodeResult(status=ExecutionResult.PASSED, running_duration_ms=61_005),
    ))
    outline.add_child(ExecutionNode(
        id=14,
        node_type=NodeType.OUTLINE_ROW,
        row_number=2,
        result=None,
    ))
    return root


class FakeRunner:
    """In-process runner that replays a prebuilt tree through its listeners."""

    def __init__(self, tree_builder: Callable[[], ExecutionNode], fail_with: Optional[BaseException] = None):
        self._build = tree_builder
        self.fail_with = fail_with
        self.listeners: List[Any] = []
        self.root: Optional[ExecutionNode] = None
        self.prepared_with: Any = None

    def prepare_execution_config(self, config: Any) -> ExecutionNode:
        self.prepared_with = config
        self.root = self._build()
        return self.root

    def add_notifier(self, listener: Any) -> None:
        self.listeners.append(listener)

    def run(self) -> ExecutionNode:
        for node in self.root.iter_nodes():
            for listener in self.listeners:
                listener.on_node_started(node)
            if self.fail_with is not None:
                raise self.fail_with
            for listener in self.listeners:
                if node.status.is_failure:
                    listener.on_node_failed(node, None)
                else:
                    listener.on_node_finished(node)
        return self.root

    def get_failures(self) -> List[RunFailure]:
        return [
            RunFailure.from_node(node)
            for node in self.root.iter_nodes()
            if node.status.is_failure and not node.has_children()
        ]


class FakeRunnerFactory:
    """Callable runner factory that remembers every runner it created."""

    def __init__(self, tree_builder: Callable[[], ExecutionNode] = build_simple_tree):
        self.tree_builder = tree_builder
        self.fail_with: Optional[BaseException] = None
        self.runners: List[FakeRunner] = []

    def __call__(self) -> FakeRunner:
        runner = FakeRunner(self.tree_builder, self.fail_with)
        self.runners.append(runner)
        return runner


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def simple_tree() -> ExecutionNode:
    return build_simple_tree()


@pytest.fixture
def outline_tree() -> ExecutionNode:
    return build_outline_tree()


@pytest.fixture
def runner_factory() -> FakeRunnerFactory:
    return FakeRunnerFactory()


@pytest.fixture
def read_js_var() -> Callable[[Path], Tuple[str, Any]]:
    """Parse a ``var name = <json>;`` data file into (name, value)."""

    def _read(path: Path) -> Tuple[str, Any]:
        text = path.read_text(encoding="utf-8")
        declaration, _, literal = text.partition(" = ")
        assert declaration.startswith("var ")
        return declaration[len("var "):], json.loads(literal.rstrip().rstrip(";"))

    return _read


@pytest.fixture
def sample_tree_dict() -> dict:
    """Serialized form of a small run, as written by an external runner."""
    return {
        "roots": [
            {
                "id": 1,
                "type": "root",
                "description": "Serialized run",
                "result": "FAILED",
                "children": [
                    {
                        "id": 2,
                        "type": "feature",
                        "feature": "Feature: Checkout",
                        "filename": "checkout.feature",
                        "tags": ["payments", "smoke"],
                        "result": {"status": "FAILED", "duration_ms": 2500},
                        "children": [
                            {
                                "id": 3,
                                "type": "scenario",
                                "scenario_name": "Pay by card",
                                "result": {"status": "passed", "duration_ms": 900},
                            },
                            {
                                "id": 4,
                                "type": "scenario",
                                "scenario_name": "Pay by voucher",
                                "result": {
                                    "status": "FAILED",
                                    "duration_ms": 1600,
                                    "failure": {
                                        "message": "voucher rejected",
                                        "type": "AssertionError",
                                        "stack": ["checkout_steps.py:42 in pay"],
                                    },
                                },
                            },
                        ],
                    }
                ],
            }
        ]
    }
