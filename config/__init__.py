"""Configuration module for the run reporter."""
from config.models import (
    ReporterConfig,
    ReportingConfig,
    ServerConfig,
    load_config,
)

__all__ = [
    "ReporterConfig",
    "ReportingConfig",
    "ServerConfig",
    "load_config",
]
