"""Custom exception hierarchy for the qacr test agent and recorder tooling."""
from __future__ import annotations

from typing import Any, Optional


class QacrError(Exception):
    """Base exception for all qacr errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Browser-related exceptions
class BrowserError(QacrError):
    """Base exception for browser automation errors."""

    pass


class NavigationError(BrowserError):
    """Raised when page navigation fails."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        details = {}
        if url:
            details["url"] = url
        if timeout:
            details["timeout"] = timeout
        super().__init__(message, details)
        self.url = url
        self.timeout = timeout


class BrowserNotStartedError(BrowserError):
    """Raised when attempting to use browser before starting."""

    def __init__(self):
        super().__init__("Browser has not been started. Call start() first.")


class ScreenshotError(BrowserError):
    """Raised when screenshot capture fails."""

    pass


# LLM-related exceptions
class LLMError(QacrError):
    """Base exception for LLM/model-related errors."""

    pass


class LLMConnectionError(LLMError):
    """Raised when unable to connect to the LLM service."""

    def __init__(self, message: str, base_url: Optional[str] = None):
        details = {"base_url": base_url} if base_url else {}
        super().__init__(message, details)
        self.base_url = base_url


class LLMResponseError(LLMError):
    """Raised when LLM returns an empty or unusable response."""

    def __init__(self, message: str, response: Optional[str] = None):
        details = {"response_preview": response[:200] if response else None}
        super().__init__(message, details)
        self.response = response


class ActionParseError(LLMError):
    """Raised when unable to parse an action from model output."""

    def __init__(self, message: str, raw_response: Optional[str] = None):
        details = {"raw_response": raw_response[:500] if raw_response else None}
        super().__init__(message, details)
        self.raw_response = raw_response


class ModelTimeoutError(LLMError):
    """Raised when model call times out."""

    def __init__(self, timeout: float):
        super().__init__(f"Model call timed out after {timeout}s", {"timeout": timeout})
        self.timeout = timeout


# Test definition exceptions
class TestDefinitionError(QacrError):
    """Base exception for test definition/loading errors."""

    __test__ = False


class TestCaseLoadError(TestDefinitionError):
    """Raised when a test case file cannot be loaded or parsed."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        details = {"file_path": file_path} if file_path else {}
        super().__init__(message, details)
        self.file_path = file_path


class TestCaseValidationError(TestDefinitionError):
    """Raised when a test case definition is invalid."""

    def __init__(self, message: str, case_id: Optional[str] = None, field: Optional[str] = None):
        details = {}
        if case_id:
            details["case_id"] = case_id
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.case_id = case_id
        self.field = field


# Recorder exceptions
class RecordingError(QacrError):
    """Base exception for recording conversion and review errors."""

    pass


class RecordingLoadError(RecordingError):
    """Raised when a recording file cannot be read, parsed, or resolved."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        details = {"file_path": file_path} if file_path else {}
        super().__init__(message, details)
        self.file_path = file_path


class RecordingValidationError(RecordingError):
    """Raised when a recording or one of its sidecars fails validation."""

    def __init__(self, message: str, issues: Optional[list[str]] = None):
        details = {"issues": issues} if issues else {}
        super().__init__(message, details)
        self.issues = issues or []


class OverrideValidationError(RecordingValidationError):
    """Raised when overrides reference steps missing from, or mismatched with, a recording."""

    pass


class BrittleSelectorError(RecordingError):
    """Raised in strict mode when brittle selectors were used without an override."""

    def __init__(self, message: str, count: int):
        super().__init__(message, {"brittle_count": count})
        self.count = count


class NoValidRecordingsError(RecordingError):
    """Raised when recording files exist but none of them is valid."""

    def __init__(self, message: str, reasons: Optional[list[str]] = None):
        super().__init__(message)
        self.reasons = reasons or []


# Configuration exceptions
class ConfigurationError(QacrError):
    """Raised when configuration is invalid."""

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when a required config file is not found."""

    def __init__(self, file_path: str):
        super().__init__(f"Configuration file not found: {file_path}", {"file_path": file_path})
        self.file_path = file_path
