"""Unit tests for reporters module."""
from __future__ import annotations

import json
from pathlib import Path
from xml.etree import ElementTree

from reporters import HTMLReporter, JSONReporter, JUnitReporter, ReportFormat
from test_types import TestRunResult


class TestJSONReporter:
    """Tests for JSON reporter."""

    def test_generates_valid_json(self, temp_dir: Path, sample_test_result: TestRunResult):
        report_path = JSONReporter().generate(sample_test_result, temp_dir)

        assert report_path.exists()
        assert report_path.suffix == ".json"
        data = json.loads(report_path.read_text())
        assert data["summary"]["total"] == 1
        assert len(data["tests"]) == 1

    def test_json_structure(self, temp_dir: Path, sample_test_result: TestRunResult):
        data = json.loads(JSONReporter().generate(sample_test_result, temp_dir).read_text())

        test = data["tests"][0]
        assert test["test_case"]["id"] == "login"
        assert test["result"]["success"] is True
        assert test["result"]["ticks_used"] == 3
        assert test["result"]["total_actions"] == 3
        assert [s["number"] for s in test["steps"]] == [1, 2]
        assert test["steps"][1]["expectations"][0]["passed"] is True

    def test_variables_and_goals_masked(self, temp_dir: Path, sample_test_result: TestRunResult):
        path = JSONReporter().generate(sample_test_result, temp_dir)
        data = json.loads(path.read_text())

        assert data["tests"][0]["test_case"]["variables"] == {"EMAIL": "***", "PASSWORD": "***"}
        assert "[MASKED]" in data["tests"][0]["steps"][0]["goal"]
        assert "hunter2" not in path.read_text()

    def test_suite_report(self, temp_dir: Path, sample_test_result: TestRunResult, failed_test_result: TestRunResult):
        path = JSONReporter().generate_suite([sample_test_result, failed_test_result], temp_dir)
        data = json.loads(path.read_text())

        assert path.name.startswith("suite-")
        assert data["summary"]["total"] == 2
        assert data["summary"]["passed"] == 1
        assert data["summary"]["failed"] == 1
        assert data["summary"]["pass_rate"] == 50.0
        assert data["failed_tests"] == [{"id": "login", "reason": failed_test_result.reason}]


class TestJUnitReporter:
    """Tests for JUnit XML reporter."""

    def test_generates_valid_xml(self, temp_dir: Path, sample_test_result: TestRunResult):
        path = JUnitReporter().generate(sample_test_result, temp_dir)
        root = ElementTree.parse(path).getroot()

        assert root.tag == "testsuite"
        assert root.get("tests") == "1"
        assert root.get("failures") == "0"
        testcase = root.find("testcase")
        assert testcase.get("classname") == "qacr.e2e"
        assert testcase.get("name") == "login"
        assert testcase.find("failure") is None

    def test_failure_details(self, temp_dir: Path, failed_test_result: TestRunResult):
        path = JUnitReporter().generate(failed_test_result, temp_dir)
        failure = ElementTree.parse(path).getroot().find("testcase/failure")

        assert failure is not None
        assert failure.get("type") == "StepFailure"
        assert "Max ticks (5) exceeded" in failure.get("message")
        assert "does not contain \"/dashboard\"" in failure.text
        assert "Locator not found" in failure.text

    def test_suite_counts(self, temp_dir: Path, sample_test_result: TestRunResult, failed_test_result: TestRunResult):
        path = JUnitReporter().generate_suite([sample_test_result, failed_test_result], temp_dir)
        root = ElementTree.parse(path).getroot()
        assert root.get("tests") == "2"
        assert root.get("failures") == "1"
        assert len(root.findall("testcase")) == 2


class TestHTMLReporter:
    """Tests for HTML reporter."""

    def test_generates_html(self, temp_dir: Path, sample_test_result: TestRunResult):
        path = HTMLReporter().generate(sample_test_result, temp_dir)
        content = path.read_text()

        assert path.suffix == ".html"
        assert "<!DOCTYPE html>" in content
        assert "Login with valid credentials" in content
        assert "Step 2: Submit the form" in content
        assert "hunter2" not in content

    def test_failure_rendering(self, temp_dir: Path, failed_test_result: TestRunResult):
        content = HTMLReporter().generate(failed_test_result, temp_dir).read_text()
        assert "FAIL" in content
        assert "Max ticks (5) exceeded without meeting expectations" in content
        assert "Locator not found" in content

    def test_escapes_html(self, temp_dir: Path, sample_test_result: TestRunResult):
        sample_test_result.reason = "<script>alert(1)</script>"
        content = HTMLReporter().generate(sample_test_result, temp_dir).read_text()
        assert "<script>alert(1)</script>" not in content
        assert "&lt;script&gt;" in content

    def test_suite_links_case_reports(self, temp_dir: Path, sample_test_result: TestRunResult):
        path = HTMLReporter().generate_suite([sample_test_result], temp_dir)
        content = path.read_text()
        case_reports = [p for p in temp_dir.glob("login-*.html")]
        assert case_reports
        assert case_reports[0].name in content


class TestReportFormat:
    def test_each_reporter_declares_format(self):
        assert HTMLReporter().format == ReportFormat.HTML
        assert JSONReporter().format == ReportFormat.JSON
        assert JUnitReporter().format == ReportFormat.JUNIT
