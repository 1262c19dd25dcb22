"""Per-tag feature and scenario pass/fail statistics."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List

from execution_tree import ExecutionNode, ExecutionResult, NodeType
from reporters.base import ReportData, ReportDocument

SCENARIO_LEVEL_TYPES = frozenset({NodeType.SCENARIO, NodeType.OUTLINE_ROW})


@dataclass
class CounterSet:
    """Counters for one granularity (features or scenarios) of one tag."""

    count: int = 0
    run: int = 0
    passed: int = 0
    failed: int = 0

    def record(self, result: ExecutionResult) -> None:
        self.count += 1
        if result is ExecutionResult.NOT_RUN:
            return
        self.run += 1
        if result is ExecutionResult.PASSED:
            self.passed += 1
        elif result.is_failure:
            self.failed += 1

    @property
    def success_pc(self) -> float:
        if self.run == 0:
            return 0.0
        return round(self.passed / self.run * 100, 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "run": self.run,
            "passed": self.passed,
            "failed": self.failed,
            "success_pc": self.success_pc,
        }


@dataclass
class TagStats:
    tag: str
    feature: CounterSet = field(default_factory=CounterSet)
    scenario: CounterSet = field(default_factory=CounterSet)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "feature": self.feature.to_dict(),
            "scenario": self.scenario.to_dict(),
        }


class ExecutionStats:
    """Aggregates results by tag across all features and scenarios of a run.

    Feature nodes and scenario-level nodes (plain scenarios and outline
    rows) count under their own tags plus everything inherited from their
    ancestors, so tagging a feature tags its scenarios.
    ``totals`` ignores tags entirely.
    """

    def __init__(self) -> None:
        self._by_tag: Dict[str, TagStats] = {}
        self.totals = TagStats(tag="all")

    @classmethod
    def from_roots(cls, roots: Iterable[ExecutionNode]) -> "ExecutionStats":
        stats = cls()
        for root in roots:
            stats._collect(root, frozenset())
        return stats

    def _collect(self, node: ExecutionNode, inherited: FrozenSet[str]) -> None:
        tags = inherited | frozenset(t for t in (node.tags or ()) if t)

        if node.node_type is NodeType.FEATURE:
            self.totals.feature.record(node.status)
            for tag in tags:
                self._stats_for(tag).feature.record(node.status)
        elif node.node_type in SCENARIO_LEVEL_TYPES:
            self.totals.scenario.record(node.status)
            for tag in tags:
                self._stats_for(tag).scenario.record(node.status)

        for child in node.children or []:
            self._collect(child, tags)

    def _stats_for(self, tag: str) -> TagStats:
        if tag not in self._by_tag:
            self._by_tag[tag] = TagStats(tag=tag)
        return self._by_tag[tag]

    def get(self, tag: str) -> TagStats:
        return self._by_tag[tag]

    def sorted_rows(self) -> List[TagStats]:
        return sorted(self._by_tag.values(), key=lambda s: s.tag)


class StatsDocument(ReportDocument):
    """``var statsData = [...];`` one row per tag, ascending by tag."""

    @property
    def filename(self) -> str:
        return "stats_data.js"

    @property
    def variable(self) -> str:
        return "statsData"

    def build(self, data: ReportData) -> List[Dict[str, Any]]:
        stats = ExecutionStats.from_roots(data.root_nodes)
        return [row.to_dict() for row in stats.sorted_rows()]
