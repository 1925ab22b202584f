"""JUnit XML report generator for CI integration."""
from __future__ import annotations

import html
from datetime import datetime
from pathlib import Path
from typing import List

from reporters.base import BaseReporter, ReportFormat, report_timestamp
from test_types import TestRunResult
from variables import mask_secrets

CLASSNAME = "qacr.e2e"
SUITE_NAME = "qacr E2E Tests"


def _cdata(text: str) -> str:
    """CDATA sections cannot contain their own terminator."""
    return text.replace("]]>", "]]]]><![CDATA[>")


class JUnitReporter(BaseReporter):
    """Generate JUnit XML reports for CI/CD integration."""

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.JUNIT

    def _escape_xml(self, text: str) -> str:
        """Escape special XML characters."""
        return html.escape(str(text), quote=True)

    def _format_timestamp(self, dt: datetime) -> str:
        """Format datetime for JUnit XML."""
        return dt.strftime("%Y-%m-%dT%H:%M:%S")

    def _build_testcase_xml(self, result: TestRunResult) -> str:
        """Build XML for a single test case."""
        name = self._escape_xml(result.case.id)
        time_sec = f"{result.duration_seconds:.3f}"
        lines = [f'    <testcase classname="{CLASSNAME}" name="{name}" time="{time_sec}">']

        if result.success:
            body = [f"Name: {result.case.name}", f"Base URL: {result.case.base_url}"]
            for number, step in enumerate(result.step_results, 1):
                body.append(f"Step {number}: {mask_secrets(step.step.goal)} ({step.ticks_used} tick(s))")
            lines.append(f"      <system-out><![CDATA[{_cdata(chr(10).join(body))}]]></system-out>")
            lines.append("    </testcase>")
            return "\n".join(lines)

        failed = result.failed_step
        failure_type = "StepFailure" if failed else "RunnerError"
        body = [
            f"Test Case: {result.case.id}",
            f"Base URL: {result.case.base_url}",
            f"Failure Reason: {result.reason}",
        ]
        if failed:
            body.append(f"Goal: {mask_secrets(failed.step.goal)}")
            body.append(f"Ticks Used: {failed.ticks_used}")
            pending = [r.error for r in failed.expectations if not r.passed and r.error]
            if pending:
                body.append("Unmet Expectations:")
                body.extend(f"  - {error}" for error in pending)
        if result.debug_dir:
            body.append(f"Debug Bundle: {result.debug_dir}")

        actions = result.actions
        body.append("")
        body.append(f"Total Actions: {len(actions)}")
        if actions:
            body.append("Last Actions:")
            for action in actions[-5:]:
                status = "ok" if action.success else f"error: {action.error}"
                body.append(f"  [{action.tick}] {action.action_type} @ {action.page_url} ({status})")

        lines.append(
            f'      <failure message="{self._escape_xml(result.reason)}" type="{failure_type}">'
            f"<![CDATA[{_cdata(chr(10).join(body))}]]></failure>"
        )
        lines.append("    </testcase>")
        return "\n".join(lines)

    def generate(self, result: TestRunResult, output_dir: Path) -> Path:
        """Generate JUnit XML report for a single test result."""
        return self._write(output_dir / f"junit-{result.case.id}-{report_timestamp()}.xml", [result])

    def generate_suite(self, results: List[TestRunResult], output_dir: Path) -> Path:
        """Generate combined JUnit XML report for multiple test results."""
        return self._write(output_dir / f"junit-{report_timestamp()}.xml", results)

    def _write(self, target: Path, results: List[TestRunResult]) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)

        tests = len(results)
        failures = sum(1 for r in results if not r.success)
        total_time = sum(r.duration_seconds for r in results)
        earliest = min((r.started_at for r in results), default=datetime.now())

        lines = ['<?xml version="1.0" encoding="UTF-8"?>']
        lines.append(
            f'<testsuite name="{SUITE_NAME}" '
            f'tests="{tests}" '
            f'failures="{failures}" '
            f'errors="0" '
            f'skipped="0" '
            f'time="{total_time:.3f}" '
            f'timestamp="{self._format_timestamp(earliest)}">'
        )
        lines.append("  <properties>")
        lines.append('    <property name="reporter" value="qacr-junit"/>')
        lines.append(f'    <property name="generated_at" value="{datetime.now().isoformat()}"/>')
        lines.append("  </properties>")
        for result in results:
            lines.append(self._build_testcase_xml(result))
        lines.append("</testsuite>")

        target.write_text("\n".join(lines), encoding="utf-8")
        return target
