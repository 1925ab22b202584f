"""Configuration module for the qacr agent and recorder tooling."""
from config.models import (
    AgentConfig,
    BrowserConfig,
    QacrConfig,
    RecordingsConfig,
    ReportingConfig,
    load_config,
)

__all__ = [
    "AgentConfig",
    "BrowserConfig",
    "ReportingConfig",
    "RecordingsConfig",
    "QacrConfig",
    "load_config",
]
