"""Report generation for execution runs."""
from reporters.assembler import ReportAssembler
from reporters.base import ReportData, ReportDocument
from reporters.detail import DetailDocument
from reporters.rendering import TemplateRenderer
from reporters.stats import ExecutionStats, StatsDocument
from reporters.tree import TreeDocument, build_navigation_tree

__all__ = [
    "ReportAssembler",
    "ReportData",
    "ReportDocument",
    "DetailDocument",
    "TemplateRenderer",
    "ExecutionStats",
    "StatsDocument",
    "TreeDocument",
    "build_navigation_tree",
]
