"""Report assembly: directory preparation, static assets, shell and data files."""
from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from config import ReportingConfig
from exceptions import ReportBuildError
from reporters.base import ReportData, ReportDocument
from reporters.detail import DetailDocument
from reporters.rendering import TemplateRenderer
from reporters.resources import copy_resource_tree, static_source
from reporters.stats import ExecutionStats, StatsDocument
from reporters.tree import TreeDocument

REPORT_FRAME_FILENAME = "report_frame.html"


def default_documents() -> List[ReportDocument]:
    return [TreeDocument(), DetailDocument(), StatsDocument()]


class ReportAssembler:
    """Builds the complete report directory for one run in a single pass."""

    def __init__(
        self,
        config: Optional[ReportingConfig] = None,
        renderer: Optional[TemplateRenderer] = None,
        documents: Optional[Sequence[ReportDocument]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ReportingConfig()
        self.renderer = renderer or TemplateRenderer(self.config.template_dir)
        self.documents = list(documents) if documents is not None else default_documents()
        self.logger = logger or logging.getLogger("run_reporter.report")

    def report_dir_for(self, output_dir: Path) -> Path:
        return Path(output_dir) / self.config.report_folder_name

    def build_report(self, data: ReportData) -> Path:
        """
        Build the report for ``data`` and return the report directory.

        Any stale report directory is removed first, so a rebuild never
        merges with earlier output. A failing step is logged and raised as
        ``ReportBuildError``; later steps are not attempted.
        """
        if data.title is None:
            data = ReportData(data.root_nodes, data.output_dir, self.config.report_title)

        report_dir = self.report_dir_for(data.output_dir)
        self.logger.debug("Build report in: %s", report_dir.resolve())
        try:
            self._prepare_report_dir(report_dir)
            self._copy_static_resources(report_dir)
            self._build_main_report(data, report_dir)
            for document in self.documents:
                self._write_document(document, data, report_dir)
        except ReportBuildError:
            self.logger.exception("Report build failed in %s", report_dir)
            raise
        self.logger.info("Report written to %s", report_dir)
        return report_dir

    def _prepare_report_dir(self, report_dir: Path) -> None:
        self.logger.debug("Preparing report directory: %s", report_dir)
        try:
            if report_dir.exists():
                shutil.rmtree(report_dir)
            report_dir.mkdir(parents=True)
        except OSError as exc:
            raise ReportBuildError(
                f"Failed to create report directory: {exc}",
                step="prepare_directory",
                path=str(report_dir),
            ) from exc

    def _copy_static_resources(self, report_dir: Path) -> None:
        self.logger.debug("Copying static resources to: %s", report_dir)
        source = static_source(self.config.static_source, self.config.static_archive_root)
        try:
            copied = copy_resource_tree(source, report_dir)
        except OSError as exc:
            raise ReportBuildError(
                f"Failed to copy static resources: {exc}",
                step="copy_static_resources",
                path=str(report_dir),
            ) from exc
        self.logger.debug("Copied %d static file(s)", copied)

    def _build_main_report(self, data: ReportData, report_dir: Path) -> None:
        self.logger.debug("Building main report file.")
        context = {
            "stats": ExecutionStats.from_roots(data.root_nodes),
            "report_title": data.title,
            "generated_at": datetime.now().strftime("%a %d %b %Y %H:%M"),
            "data_files": [document.filename for document in self.documents],
        }
        content = self.renderer.render(self.config.template_name, context)
        target = report_dir / REPORT_FRAME_FILENAME
        try:
            target.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ReportBuildError(
                f"Failed to write {REPORT_FRAME_FILENAME}: {exc}", step="render", path=str(target)
            ) from exc

    def _write_document(self, document: ReportDocument, data: ReportData, report_dir: Path) -> None:
        self.logger.debug("Writing %s", document.filename)
        try:
            document.write(data, report_dir)
        except (OSError, TypeError, ValueError) as exc:
            raise ReportBuildError(
                f"Failed to write {document.filename}: {exc}",
                step=document.variable,
                path=str(report_dir / document.filename),
            ) from exc
