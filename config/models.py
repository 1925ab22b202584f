"""Pydantic configuration models for the qacr agent and recorder tooling."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from exceptions import ConfigFileNotFoundError, ConfigurationError


# Load .env file if present
load_dotenv()

DEFAULT_CONFIG_FILES = ("qacr.yaml", "qacr.yml", "qacr.json")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


class AgentConfig(BaseModel):
    """Model backend and agent loop configuration."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    provider: str = Field(
        default="chutes",
        description="Model backend provider (chutes, ollama, stub)",
    )
    model: Optional[str] = Field(
        default=None,
        description="Model name; the provider preset supplies a default",
    )
    base_url: Optional[str] = Field(
        default=None,
        description="OpenAI-compatible base URL; the provider preset supplies a default",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key for the model backend",
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for the agent loop",
    )
    top_p: float = Field(
        default=0.9,
        gt=0.0,
        le=1.0,
        description="Nucleus sampling parameter",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Per-request timeout for model calls",
    )
    max_ticks: int = Field(
        default=25,
        ge=1,
        le=200,
        description="Maximum observe/act iterations per test step",
    )
    aria_snapshot_max_chars: int = Field(
        default=8000,
        ge=200,
        description="Cap on the accessibility snapshot included in each prompt",
    )
    short_text_max_chars: int = Field(
        default=2000,
        ge=100,
        description="Cap on the visible text excerpt included in each prompt",
    )
    post_action_delay_ms: int = Field(
        default=200,
        ge=0,
        le=10000,
        description="Settle delay after every executed action",
    )
    expectation_timeout_ms: int = Field(
        default=3000,
        ge=0,
        le=60000,
        description="Visibility polling timeout for expectations",
    )
    action_timeout_ms: int = Field(
        default=10000,
        ge=100,
        le=120000,
        description="Per-operation timeout for page actions",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Ensure base_url doesn't have trailing slash."""
        return v.rstrip("/") if v else v

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any) -> Any:
        """Load values from environment variables if not explicitly set."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        env_mapping = {
            "provider": "LLM_PROVIDER",
            "model": "LLM_MODEL",
            "base_url": "LLM_BASE_URL",
            "temperature": "LLM_TEMPERATURE",
            "top_p": "LLM_TOP_P",
            "max_ticks": "MAX_TICKS_PER_STEP",
            "aria_snapshot_max_chars": "ARIA_SNAPSHOT_MAX_CHARS",
            "short_text_max_chars": "SHORT_TEXT_MAX_CHARS",
        }
        for field_name, env_var in env_mapping.items():
            if data.get(field_name) is None:
                env_value = os.getenv(env_var)
                if env_value:
                    data[field_name] = env_value

        if data.get("api_key") is None:
            env_value = os.getenv("CHUTES_API_KEY") or os.getenv("LLM_API_KEY")
            if env_value:
                data["api_key"] = env_value

        if data.get("timeout_seconds") is None:
            timeout_ms = os.getenv("LLM_TIMEOUT_MS")
            if timeout_ms:
                try:
                    data["timeout_seconds"] = float(timeout_ms) / 1000.0
                except ValueError as exc:
                    raise ValueError(f"LLM_TIMEOUT_MS must be a number, got {timeout_ms!r}") from exc
        return data


class BrowserConfig(BaseModel):
    """Browser automation configuration."""

    model_config = ConfigDict(frozen=True)

    browser: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to use",
    )
    headless: bool = Field(
        default=True,
        description="Run browser in headless mode",
    )
    viewport_width: int = Field(
        default=1280,
        ge=320,
        le=3840,
        description="Browser viewport width",
    )
    viewport_height: int = Field(
        default=800,
        ge=240,
        le=2160,
        description="Browser viewport height",
    )
    slow_mo: int = Field(
        default=0,
        ge=0,
        le=5000,
        description="Slow down browser operations by this many ms",
    )


class ReportingConfig(BaseModel):
    """Reporting and output configuration."""

    model_config = ConfigDict(frozen=True)

    save_screenshots: bool = Field(
        default=True,
        description="Capture a screenshot when a step fails",
    )
    screenshots_folder: Path = Field(
        default=Path("./screenshots"),
        description="Directory for saving screenshots",
    )
    reports_folder: Path = Field(
        default=Path("./reports"),
        description="Directory for saving reports and debug bundles",
    )
    output_format: Literal["html", "json", "junit", "all"] = Field(
        default="html",
        description="Report output format",
    )

    @field_validator("screenshots_folder", "reports_folder", mode="before")
    @classmethod
    def convert_to_path(cls, v: Any) -> Path:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v


class RecordingsConfig(BaseModel):
    """Locations and policy for recording conversion and override review."""

    model_config = ConfigDict(frozen=True)

    recordings_dir: Path = Field(
        default=Path("recordings"),
        description="Directory holding DevTools Recorder JSON exports",
    )
    output_dir: Path = Field(
        default=Path("tests/recordings"),
        description="Directory for generated replay scripts",
    )
    overrides_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding per-recording locator override sidecars (default: <recordings_dir>/overrides)",
    )
    assertions_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding per-recording assertion sidecars (default: <recordings_dir>/assertions)",
    )
    test_results_dir: Path = Field(
        default=Path("test-results"),
        description="Directory searched for failure context snapshots",
    )
    strict_selectors: bool = Field(
        default=False,
        description="Fail generation when a brittle selector has no override",
    )

    @field_validator(
        "recordings_dir", "output_dir", "overrides_dir", "assertions_dir", "test_results_dir",
        mode="before",
    )
    @classmethod
    def convert_to_path(cls, v: Any) -> Path:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any) -> Any:
        """
        Strict mode turns on with RECORDINGS_STRICT_SELECTORS=1 or in CI.

        Sidecar directories not set explicitly live under ``recordings_dir``.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        recordings_dir = Path(data.get("recordings_dir") or "recordings")
        for key, name in (("overrides_dir", "overrides"), ("assertions_dir", "assertions")):
            if data.get(key) is None:
                data[key] = recordings_dir / name
        if data.get("strict_selectors") is None:
            data["strict_selectors"] = (
                os.getenv("RECORDINGS_STRICT_SELECTORS") == "1" or _env_flag("CI")
            )
        return data


class QacrConfig(BaseModel):
    """Root configuration model combining all config sections."""

    model_config = ConfigDict(frozen=True)

    agent: AgentConfig = Field(default_factory=AgentConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    recordings: RecordingsConfig = Field(default_factory=RecordingsConfig)

    # Execution settings
    parallel_workers: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Number of test cases run concurrently (1 = sequential)",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose logging",
    )


def _read_config_file(config_path: Path) -> dict[str, Any]:
    with open(config_path, "r", encoding="utf-8") as f:
        if config_path.suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(f) or {}
        else:
            data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {config_path}")
    return data


def load_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict[str, Any]] = None,
) -> QacrConfig:
    """
    Load configuration from file with CLI overrides.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file
    3. Environment variables
    4. Defaults

    The returned configuration is immutable; it is built once and passed
    explicitly to every component.
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise ConfigFileNotFoundError(str(config_path))
        config_data = _read_config_file(config_path)
    else:
        for candidate in DEFAULT_CONFIG_FILES:
            path = Path(candidate)
            if path.exists():
                config_data = _read_config_file(path)
                break

    for section in ("agent", "browser", "reporting", "recordings"):
        config_data[section] = dict(config_data.get(section) or {})

    if cli_overrides:
        _apply_overrides(config_data, cli_overrides)

    try:
        return QacrConfig.model_validate(config_data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _apply_overrides(config_dict: dict[str, Any], overrides: dict[str, Any]) -> None:
    """Apply CLI overrides to config dictionary."""
    override_mapping = {
        "browser": ("browser", "browser"),
        "headless": ("browser", "headless"),
        "parallel": ("parallel_workers", None),
        "verbose": ("verbose", None),
        "output_format": ("reporting", "output_format"),
        "reports_dir": ("reporting", "reports_folder"),
        "provider": ("agent", "provider"),
        "model": ("agent", "model"),
        "base_url": ("agent", "base_url"),
        "max_ticks": ("agent", "max_ticks"),
        "recordings_dir": ("recordings", "recordings_dir"),
        "output_dir": ("recordings", "output_dir"),
        "strict": ("recordings", "strict_selectors"),
    }

    for key, value in overrides.items():
        if value is None:
            continue

        if key == "headful":
            if value:
                config_dict["browser"]["headless"] = False
            continue

        mapping = override_mapping.get(key)
        if mapping:
            section, field = mapping
            if field is None:
                config_dict[section] = value
            else:
                config_dict[section][field] = value
