"""Base document interface for report data files."""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from execution_tree import ExecutionNode


@dataclass
class ReportData:
    """Input for one report build: the run's root nodes and where to write."""

    root_nodes: List[ExecutionNode]
    output_dir: Path
    title: Optional[str] = None


def to_script_literal(variable: str, value: Any) -> str:
    """Render ``value`` as a ``var <name> = <literal>;`` script."""
    literal = json.dumps(value, indent=1, ensure_ascii=False)
    return f"var {variable} = {literal};\n"


class ReportDocument(ABC):
    """A data file loaded by the HTML shell as a script assigning one variable."""

    @property
    @abstractmethod
    def filename(self) -> str:
        """Name of the file written into the report directory."""
        pass

    @property
    @abstractmethod
    def variable(self) -> str:
        """Script variable the document assigns."""
        pass

    @abstractmethod
    def build(self, data: ReportData) -> Any:
        """
        Build the JSON-serializable document body.

        Args:
            data: Root nodes and report settings

        Returns:
            Value assigned to ``variable``
        """
        pass

    def write(self, data: ReportData, report_dir: Path) -> Path:
        target = report_dir / self.filename
        target.write_text(to_script_literal(self.variable, self.build(data)), encoding="utf-8")
        return target
