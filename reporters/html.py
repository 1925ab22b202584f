"""HTML report generator for E2E test runs."""
from __future__ import annotations

import html
import json
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from reporters.base import BaseReporter, ReportFormat, report_timestamp
from test_types import ActionTrace, StepResult, TestRunResult
from variables import mask_secrets

CSS = """
:root {
    --bg-primary: #0b1220;
    --bg-card: #111a2d;
    --bg-input: #0f1729;
    --border-color: #1f2a44;
    --text-primary: #e6edf7;
    --text-secondary: #9fb0cc;
    --accent-blue: #9dd0ff;
    --success-text: #75e0a7;
    --success-border: #1f7a4d;
    --fail-text: #ff9b9b;
    --fail-border: #a33a3a;
}
* { box-sizing: border-box; }
body {
    margin: 0;
    background: var(--bg-primary);
    color: var(--text-primary);
    font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
    line-height: 1.5;
}
.container { max-width: 1100px; margin: 0 auto; padding: 24px; }
.card {
    background: var(--bg-card);
    border: 1px solid var(--border-color);
    border-radius: 10px;
    padding: 20px;
    margin-bottom: 16px;
}
.header { display: flex; justify-content: space-between; align-items: flex-start; gap: 16px; }
h1 { margin: 0 0 6px; font-size: 1.4rem; }
h2 { margin: 0 0 12px; font-size: 1.1rem; }
code { color: var(--accent-blue); }
.badge { padding: 4px 12px; border-radius: 999px; font-weight: 700; font-size: 0.8rem; }
.badge.pass { background: rgba(31, 122, 77, 0.3); color: var(--success-text); border: 1px solid var(--success-border); }
.badge.fail { background: rgba(163, 58, 58, 0.3); color: var(--fail-text); border: 1px solid var(--fail-border); }
.meta { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 8px; margin-top: 12px; }
.pill { background: var(--bg-input); border: 1px solid var(--border-color); border-radius: 6px; padding: 6px 10px; font-size: 0.85rem; }
.error-details { background: rgba(163, 58, 58, 0.15); border-left: 3px solid var(--fail-border); padding: 10px; white-space: pre-wrap; }
table { width: 100%; border-collapse: collapse; font-size: 0.85rem; }
th, td { text-align: left; padding: 6px 8px; border-bottom: 1px solid var(--border-color); vertical-align: top; }
th { color: var(--text-secondary); font-weight: 600; }
tr.failure td { color: var(--fail-text); }
.expect-list { list-style: none; padding: 0; margin: 8px 0; }
.expect-list li.passed::before { content: "\\2713  "; color: var(--success-text); }
.expect-list li.failed::before { content: "\\2717  "; color: var(--fail-text); }
.empty { color: var(--text-secondary); font-style: italic; }
.summary-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(150px, 1fr)); gap: 16px; margin: 20px 0; }
.summary-stat { text-align: center; padding: 20px; background: var(--bg-input); border-radius: 8px; border: 1px solid var(--border-color); }
.summary-stat .value { font-size: 2rem; font-weight: 700; color: var(--accent-blue); }
.summary-stat.passed .value { color: var(--success-text); }
.summary-stat.failed .value { color: var(--fail-text); }
.summary-stat .label { font-size: 0.8rem; color: var(--text-secondary); }
.test-card { background: var(--bg-input); border: 1px solid var(--border-color); border-left: 3px solid var(--border-color); border-radius: 8px; padding: 14px; margin-bottom: 10px; }
.test-card.pass { border-left-color: var(--success-border); }
.test-card.fail { border-left-color: var(--fail-border); }
.test-card a { color: var(--text-primary); font-weight: 600; text-decoration: none; }
.test-reason { color: var(--text-secondary); font-size: 0.85rem; font-style: italic; }
img.screenshot { max-width: 100%; border: 1px solid var(--border-color); border-radius: 6px; }
"""


def _esc(value: object) -> str:
    return html.escape(str(value))


class HTMLReporter(BaseReporter):
    """Generate human-readable HTML reports with per-step timelines."""

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.HTML

    def _relative(self, path: Optional[Path], report_root: Path) -> str:
        if not path or not Path(path).exists():
            return ""
        return os.path.relpath(path, start=report_root)

    def _render_actions(self, actions: List[ActionTrace]) -> str:
        if not actions:
            return "<p class='empty'>No actions were executed for this step.</p>"
        rows = []
        for act in actions:
            row_class = "success" if act.success else "failure"
            rows.append(
                f"<tr class='{row_class}'>"
                f"<td>{act.tick}</td>"
                f"<td>{_esc(act.action_type)}</td>"
                f"<td><code>{_esc(json.dumps(act.action, ensure_ascii=False))}</code></td>"
                f"<td>{'ok' if act.success else _esc(act.error or 'failed')}</td>"
                f"<td><code>{_esc(act.page_url)}</code></td>"
                "</tr>"
            )
        return (
            "<table><thead><tr><th>Tick</th><th>Action</th><th>Arguments</th><th>Result</th><th>URL</th></tr></thead>"
            f"<tbody>{''.join(rows)}</tbody></table>"
        )

    def _render_step(self, number: int, step_result: StepResult) -> str:
        verdict_class = "pass" if step_result.success else "fail"
        expectations = "".join(
            f"<li class='{'passed' if r.passed else 'failed'}'>"
            f"{_esc(r.expectation.type)}: {_esc(mask_secrets(r.expectation.value))}"
            f"{'' if r.passed else ' - ' + _esc(r.error or '')}</li>"
            for r in step_result.expectations
        )
        error = f"<div class='error-details'>{_esc(step_result.error)}</div>" if step_result.error else ""
        return f"""
        <div class="card">
            <div class="header">
                <h2>Step {number}: {_esc(mask_secrets(step_result.step.goal))}</h2>
                <span class="badge {verdict_class}">{verdict_class.upper()}</span>
            </div>
            <p>Ticks used: {step_result.ticks_used}</p>
            {f"<ul class='expect-list'>{expectations}</ul>" if expectations else ""}
            {error}
            {self._render_actions(step_result.actions)}
        </div>"""

    def _page(self, title: str, body: str) -> str:
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{_esc(title)}</title>
    <style>{CSS}</style>
</head>
<body>
    <div class="container">
{body}
    </div>
</body>
</html>"""

    def generate(self, result: TestRunResult, output_dir: Path) -> Path:
        """Generate HTML report for a single test result."""
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / f"{result.case.id}-{report_timestamp()}.html"
        verdict_class = "pass" if result.success else "fail"

        screenshot = self._relative(result.screenshot_path, output_dir)
        screenshot_html = (
            f'<div class="card"><h2>Failure Screenshot</h2><img class="screenshot" src="{_esc(screenshot)}" alt="Failure screenshot"></div>'
            if screenshot
            else ""
        )
        debug_html = (
            f'<div class="pill"><strong>Debug bundle:</strong> <code>{_esc(result.debug_dir)}</code></div>'
            if result.debug_dir
            else ""
        )

        body = f"""
        <div class="card">
            <div class="header">
                <div>
                    <h1>{_esc(result.case.name)}</h1>
                    <p>Test case: <code>{_esc(result.case.id)}</code> &middot; Base URL: <code>{_esc(result.case.base_url)}</code></p>
                </div>
                <span class="badge {verdict_class}">{verdict_class.upper()}</span>
            </div>
            <div class="meta">
                <div class="pill"><strong>Started:</strong> {result.started_at.strftime('%Y-%m-%d %H:%M:%S')}</div>
                <div class="pill"><strong>Duration:</strong> {result.duration_seconds:.1f}s</div>
                <div class="pill"><strong>Ticks:</strong> {result.ticks_used}</div>
                <div class="pill"><strong>Actions:</strong> {result.action_count}</div>
                <div class="pill"><strong>Browser:</strong> {_esc(result.browser_type or 'n/a')}</div>
                {debug_html}
            </div>
            <div class="{'pill' if result.success else 'error-details'}" style="margin-top: 12px;">{_esc(result.reason)}</div>
        </div>
        {"".join(self._render_step(i, s) for i, s in enumerate(result.step_results, 1))}
        {screenshot_html}"""

        target.write_text(self._page(f"E2E Report - {result.case.id}", body), encoding="utf-8")
        return target

    def generate_suite(self, results: List[TestRunResult], output_dir: Path) -> Path:
        """Generate a suite overview linking to per-case reports."""
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / f"suite-{report_timestamp()}.html"

        passed = sum(1 for r in results if r.success)
        failed = len(results) - passed
        pass_rate = (passed / len(results) * 100) if results else 0

        cards = []
        for result in results:
            report_name = self.generate(result, output_dir).name
            verdict_class = "pass" if result.success else "fail"
            reason = result.reason if len(result.reason) <= 200 else result.reason[:200] + "..."
            cards.append(
                f'<div class="test-card {verdict_class}">'
                f'<div class="header"><a href="{_esc(report_name)}">{_esc(result.case.id)}</a>'
                f'<span class="badge {verdict_class}">{verdict_class.upper()}</span></div>'
                f"<p>{_esc(result.case.name)} &middot; {result.duration_seconds:.1f}s &middot; "
                f"{len(result.step_results)}/{len(result.case.steps)} step(s) run</p>"
                f'<p class="test-reason">{_esc(reason)}</p></div>'
            )

        body = f"""
        <div class="card">
            <h1>E2E Test Suite Report</h1>
            <p>Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}</p>
            <div class="summary-grid">
                <div class="summary-stat"><div class="value">{len(results)}</div><div class="label">Total</div></div>
                <div class="summary-stat passed"><div class="value">{passed}</div><div class="label">Passed</div></div>
                <div class="summary-stat failed"><div class="value">{failed}</div><div class="label">Failed</div></div>
                <div class="summary-stat"><div class="value">{pass_rate:.0f}%</div><div class="label">Pass Rate</div></div>
            </div>
        </div>
        <div class="card">
            <h2>Test Cases</h2>
            {"".join(cards) or "<p class='empty'>No test cases were run.</p>"}
        </div>"""

        target.write_text(self._page("E2E Test Suite Report", body), encoding="utf-8")
        return target
