"""Pydantic configuration models for the run reporter."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from exceptions import ConfigFileNotFoundError, ConfigurationError


# Load .env file if present
load_dotenv()


class ReportingConfig(BaseModel):
    """Report output configuration."""

    reports_folder: Path = Field(
        default=Path("./reports"),
        description="Directory the report folder is created in",
    )
    report_folder_name: str = Field(
        default="feature_report",
        description="Name of the report folder; wiped and rebuilt on each build",
    )
    report_title: str = Field(
        default="Execution report",
        description="Title shown in the report shell and navigation tree",
    )
    static_source: Optional[Path] = Field(
        default=None,
        description="Directory or .zip archive of static assets (default: bundled assets)",
    )
    static_archive_root: str = Field(
        default="static/",
        description="Folder inside a static asset archive that holds the assets",
    )
    template_dir: Optional[Path] = Field(
        default=None,
        description="Directory with a custom report shell template",
    )
    template_name: str = Field(
        default="report_frame.html.j2",
        description="Template rendered into report_frame.html",
    )

    @field_validator("reports_folder", "static_source", "template_dir", mode="before")
    @classmethod
    def convert_to_path(cls, v: Any) -> Any:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v

    @field_validator("report_folder_name")
    @classmethod
    def validate_folder_name(cls, v: str) -> str:
        """The report folder is deleted on rebuild, so keep it to one path component."""
        if not v or v in {".", ".."} or "/" in v or "\\" in v:
            raise ValueError("report_folder_name must be a single folder name")
        return v


class ServerConfig(BaseModel):
    """Remote control server configuration."""

    name: str = Field(
        default="run-reporter-mcp",
        description="Server name announced to clients and used as event source",
    )
    runner_factory: Optional[str] = Field(
        default=None,
        description="Runner factory as 'package.module:attribute'",
    )
    event_log_size: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Number of recent events kept for polling clients",
    )
    log_file: Path = Field(
        default=Path("./run_reporter_mcp.log"),
        description="Log file for the server (stdout belongs to the stdio transport)",
    )
    http_bind: Optional[str] = Field(
        default=None,
        description="Serve HTTP SSE on host:port instead of stdio",
    )

    @field_validator("runner_factory")
    @classmethod
    def validate_runner_factory(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v.count(":") != 1:
            raise ValueError("runner_factory must look like 'package.module:attribute'")
        return v

    @field_validator("http_bind")
    @classmethod
    def validate_http_bind(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        host, sep, port = v.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError("http_bind must look like 'host:port'")
        return v

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Load values from environment variables if not explicitly set."""
        if not isinstance(data, dict):
            return data
        env_mapping = {
            "runner_factory": "RUN_REPORTER_RUNNER_FACTORY",
            "http_bind": "RUN_REPORTER_HTTP_BIND",
            "log_file": "RUN_REPORTER_LOG_FILE",
        }
        for field_name, env_var in env_mapping.items():
            if field_name not in data or data[field_name] is None:
                env_value = os.getenv(env_var)
                if env_value:
                    data[field_name] = env_value
        return data


class ReporterConfig(BaseModel):
    """Root configuration model combining all config sections."""

    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    verbose: bool = Field(
        default=False,
        description="Enable verbose logging",
    )


def load_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict[str, Any]] = None,
) -> ReporterConfig:
    """
    Load configuration from file with CLI overrides.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    An explicitly given ``config_path`` must exist; the default
    ``config.json`` is optional.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = Path("config.json")
    elif not config_path.exists():
        raise ConfigFileNotFoundError(str(config_path))

    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                if config_path.suffix in {".yaml", ".yml"}:
                    config_data = yaml.safe_load(f) or {}
                else:
                    config_data = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                f"Failed to read config file: {exc}", {"file_path": str(config_path)}
            ) from exc

    config = ReporterConfig.model_validate(config_data)

    # Apply CLI overrides
    if cli_overrides:
        config_dict = config.model_dump()
        _apply_overrides(config_dict, cli_overrides)
        config = ReporterConfig.model_validate(config_dict)

    return config


def _apply_overrides(config_dict: dict[str, Any], overrides: dict[str, Any]) -> None:
    """Apply CLI overrides to config dictionary."""
    override_mapping = {
        "reports_dir": ("reporting", "reports_folder"),
        "title": ("reporting", "report_title"),
        "static_source": ("reporting", "static_source"),
        "runner_factory": ("server", "runner_factory"),
        "http": ("server", "http_bind"),
        "log_file": ("server", "log_file"),
        "verbose": ("verbose", None),
    }

    for key, value in overrides.items():
        if value is None:
            continue

        mapping = override_mapping.get(key)
        if mapping:
            section, field = mapping
            if field is None:
                config_dict[section] = value
            else:
                config_dict[section][field] = value
