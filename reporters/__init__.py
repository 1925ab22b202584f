"""HTML, JSON and JUnit writers for agent test case results and suite summaries."""
from reporters.base import BaseReporter, ReportFormat, report_timestamp
from reporters.html import HTMLReporter
from reporters.json_reporter import JSONReporter
from reporters.junit import JUnitReporter

ALL_REPORTERS = (HTMLReporter, JSONReporter, JUnitReporter)

__all__ = [
    "ALL_REPORTERS",
    "BaseReporter",
    "ReportFormat",
    "HTMLReporter",
    "JSONReporter",
    "JUnitReporter",
    "report_timestamp",
]
