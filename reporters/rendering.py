"""Jinja2-backed renderer for the report HTML shell."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, PackageLoader, TemplateError, select_autoescape

from exceptions import RenderError


class TemplateRenderer:
    """Render named templates with a context mapping."""

    def __init__(self, template_dir: Optional[Path] = None):
        """
        Initialize the renderer.

        Args:
            template_dir: Directory to load templates from instead of the
                templates bundled with the ``reporters`` package
        """
        if template_dir is not None:
            loader = FileSystemLoader(str(template_dir))
        else:
            loader = PackageLoader("reporters", "templates")
        self.env = Environment(
            loader=loader,
            autoescape=select_autoescape(enabled_extensions=("html", "j2")),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, context: Mapping[str, Any]) -> str:
        try:
            return self.env.get_template(template_name).render(**context)
        except TemplateError as exc:
            raise RenderError(f"Failed to render {template_name}: {exc}", template=template_name) from exc
        except Exception as exc:
            # Errors raised by expressions inside the template itself
            raise RenderError(
                f"Failed to render {template_name}: {type(exc).__name__}: {exc}", template=template_name
            ) from exc
