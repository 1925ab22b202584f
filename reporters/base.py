"""Reporter interface shared by the HTML, JSON and JUnit writers."""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List

from test_types import TestRunResult


class ReportFormat(str, Enum):
    """Values accepted by ``reporting.output_format``."""
    HTML = "html"
    JSON = "json"
    JUNIT = "junit"
    ALL = "all"


def report_timestamp() -> str:
    """Local-time fragment used in report file names."""
    return datetime.now().strftime("%Y%m%d-%H%M%S")


class BaseReporter(ABC):
    """Writes one file per test case and one per suite into a reports directory."""

    @property
    @abstractmethod
    def format(self) -> ReportFormat:
        """The ``output_format`` value that selects this reporter."""

    @abstractmethod
    def generate(self, result: TestRunResult, output_dir: Path) -> Path:
        """
        Write the report for one test case.

        Args:
            result: Outcome of the case, including per-step results
            output_dir: Directory to write into; created if missing

        Returns:
            Path of the written file
        """

    @abstractmethod
    def generate_suite(self, results: List[TestRunResult], output_dir: Path) -> Path:
        """
        Write the suite summary for every case in the run.

        Args:
            results: Outcomes in the order the cases were given
            output_dir: Directory to write into; created if missing

        Returns:
            Path of the written file
        """
