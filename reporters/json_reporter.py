"""JSON report generator for E2E test runs."""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from reporters.base import BaseReporter, ReportFormat, report_timestamp
from test_types import StepResult, TestRunResult
from variables import mask_secrets

REPORT_VERSION = "1.0"


class JSONReporter(BaseReporter):
    """Generate machine-readable JSON reports."""

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.JSON

    def _step_to_dict(self, number: int, step_result: StepResult) -> Dict[str, Any]:
        return {
            "number": number,
            "goal": mask_secrets(step_result.step.goal),
            "success": step_result.success,
            "ticks_used": step_result.ticks_used,
            "error": step_result.error,
            "expectations": [r.to_dict() for r in step_result.expectations],
            "actions": [a.to_dict() for a in step_result.actions],
        }

    def _result_to_dict(self, result: TestRunResult) -> Dict[str, Any]:
        """Convert TestRunResult to a JSON-serializable dict."""
        case = result.case
        return {
            "test_case": {
                "id": case.id,
                "name": case.name,
                "base_url": case.base_url,
                "tags": sorted(case.tags),
                "variables": {k: "***" for k in case.variables},
                "steps": [mask_secrets(s.goal) for s in case.steps],
            },
            "result": {
                "success": result.success,
                "status": result.status,
                "reason": result.reason,
                "started_at": result.started_at.isoformat(),
                "finished_at": result.finished_at.isoformat(),
                "duration_seconds": result.duration_seconds,
                "browser": result.browser_type,
                "final_url": result.final_url,
                "ticks_used": result.ticks_used,
                "total_actions": result.action_count,
                "screenshot": str(result.screenshot_path) if result.screenshot_path else None,
                "debug_dir": str(result.debug_dir) if result.debug_dir else None,
            },
            "steps": [self._step_to_dict(i, s) for i, s in enumerate(result.step_results, 1)],
        }

    def _summary(self, results: List[TestRunResult]) -> Dict[str, Any]:
        passed = sum(1 for r in results if r.success)
        durations = [r.duration_seconds for r in results]
        total_duration = sum(durations)
        return {
            "total": len(results),
            "passed": passed,
            "failed": len(results) - passed,
            "pass_rate": round(passed / len(results) * 100, 2) if results else 0.0,
            "total_duration_seconds": round(total_duration, 2),
            "avg_duration_seconds": round(total_duration / len(durations), 2) if durations else 0,
            "min_duration_seconds": round(min(durations), 2) if durations else 0,
            "max_duration_seconds": round(max(durations), 2) if durations else 0,
        }

    def _write(self, target: Path, results: List[TestRunResult]) -> Path:
        report_data = {
            "generated_at": datetime.now().isoformat(),
            "report_version": REPORT_VERSION,
            "tests": [self._result_to_dict(r) for r in results],
            "summary": self._summary(results),
            "failed_tests": [{"id": r.case.id, "reason": r.reason} for r in results if not r.success],
        }
        target.write_text(json.dumps(report_data, indent=2), encoding="utf-8")
        return target

    def generate(self, result: TestRunResult, output_dir: Path) -> Path:
        """Generate JSON report for a single test result."""
        output_dir.mkdir(parents=True, exist_ok=True)
        return self._write(output_dir / f"{result.case.id}-{report_timestamp()}.json", [result])

    def generate_suite(self, results: List[TestRunResult], output_dir: Path) -> Path:
        """Generate combined JSON report for multiple test results."""
        output_dir.mkdir(parents=True, exist_ok=True)
        return self._write(output_dir / f"suite-{report_timestamp()}.json", results)
