"""Pytest fixtures for qacr tests."""
from __future__ import annotations

import json
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest

from config import AgentConfig
from expectations import Expectation, ExpectationResult
from test_types import ActionTrace, StepResult, TestCase, TestRunResult, TestStep

Query = Tuple[Any, ...]


class FakeTimeout(Exception):
    """Stands in for Playwright's TimeoutError."""


class FakeKeyboard:
    def __init__(self, page: "FakePage"):
        self.page = page

    async def press(self, key: str) -> None:
        self.page.events.append(("keyboard.press", key))


class FakeLocator:
    """Async locator double keyed by the query that produced it."""

    def __init__(self, page: "FakePage", query: Query):
        self.page = page
        self.query = query

    @property
    def first(self) -> "FakeLocator":
        return self

    def or_(self, other: "FakeLocator") -> "FakeLocator":
        return self

    async def count(self) -> int:
        return self.page.counts.get(self.query, self.page.default_count)

    async def _act(self, name: str, *args: Any) -> None:
        if self.query in self.page.failing:
            raise FakeTimeout(f"{name} timed out\nCall log:\n  - waiting for locator")
        self.page.events.append((name, self.query) + args)

    async def click(self, timeout: Optional[float] = None) -> None:
        await self._act("click")
        target = self.page.navigations.get(self.query)
        if target:
            self.page.url = target

    async def fill(self, text: str, timeout: Optional[float] = None) -> None:
        await self._act("fill", text)

    async def select_option(self, value: str, timeout: Optional[float] = None) -> None:
        await self._act("select", value)

    async def check(self, timeout: Optional[float] = None) -> None:
        await self._act("check")

    async def uncheck(self, timeout: Optional[float] = None) -> None:
        await self._act("uncheck")

    async def press(self, key: str, timeout: Optional[float] = None) -> None:
        await self._act("press", key)

    async def wait_for(self, state: str = "visible", timeout: Optional[float] = None) -> None:
        if self.query not in self.page.visible:
            raise FakeTimeout(f"{self.query} not visible after {timeout}ms")

    async def aria_snapshot(self) -> str:
        if isinstance(self.page.aria, Exception):
            raise self.page.aria
        return self.page.aria

    async def inner_text(self, timeout: Optional[float] = None) -> str:
        return self.page.body_text


class FakePage:
    """
    In-memory stand-in for ``playwright.async_api.Page``.

    ``visible`` holds the queries whose locators become visible, ``counts``
    overrides match counts (default 1), ``navigations`` maps a clicked query
    to the URL the page moves to, and ``failing`` lists queries whose
    interactions raise.
    """

    def __init__(
        self,
        url: str = "https://example.com/",
        title: str = "Example",
        aria: Any = '- heading "Example Domain" [level=1]',
        body_text: str = "Example Domain",
        visible: Iterable[Query] = (),
        counts: Optional[Dict[Query, int]] = None,
        navigations: Optional[Dict[Query, str]] = None,
        failing: Iterable[Query] = (),
    ):
        self.url = url
        self._title = title
        self.aria = aria
        self.body_text = body_text
        self.visible = set(visible)
        self.counts = dict(counts or {})
        self.default_count = 1
        self.navigations = dict(navigations or {})
        self.failing = set(failing)
        self.events: List[Tuple[Any, ...]] = []
        self.keyboard = FakeKeyboard(self)

    async def title(self) -> str:
        return self._title

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, ("css", selector))

    def get_by_role(self, role: str, name: Optional[str] = None, exact: Optional[bool] = None) -> FakeLocator:
        return FakeLocator(self, ("role", role, name))

    def get_by_label(self, text: str, exact: Optional[bool] = None) -> FakeLocator:
        return FakeLocator(self, ("label", text))

    def get_by_test_id(self, test_id: str) -> FakeLocator:
        return FakeLocator(self, ("testid", test_id))

    def get_by_text(self, text: str, exact: Optional[bool] = None) -> FakeLocator:
        return FakeLocator(self, ("text", text))

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.events.append(("goto", url))
        self.url = url

    async def wait_for_timeout(self, ms: float) -> None:
        self.events.append(("wait", ms))

    async def wait_for_load_state(self, state: Optional[str] = None, timeout: Optional[float] = None) -> None:
        return None

    async def screenshot(self, path: Optional[str] = None, full_page: bool = False) -> bytes:
        if path:
            Path(path).write_bytes(b"\x89PNG fake")
        return b"\x89PNG fake"


def action_json(action: Dict[str, Any], thinking: str = "next step") -> str:
    """Model reply carrying one action."""
    return json.dumps({"thinking": thinking, "action": action})


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def fast_agent_config() -> AgentConfig:
    """Agent config with no settle delays."""
    return AgentConfig(provider="stub", max_ticks=5, post_action_delay_ms=0, expectation_timeout_ms=0)


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_test_case() -> TestCase:
    """A two-step login test case."""
    return TestCase(
        id="login",
        name="Login with valid credentials",
        base_url="https://example.com/login",
        steps=[
            TestStep(
                goal="Fill the email field with ${ENV.EMAIL} and the password with ${ENV.PASSWORD}",
                expect=[],
            ),
            TestStep(
                goal="Submit the form",
                expect=[Expectation(type="url_contains", value="/dashboard")],
            ),
        ],
        variables={"EMAIL": "user@example.com", "PASSWORD": "hunter2"},
        tags={"smoke", "auth"},
    )


@pytest.fixture
def sample_test_result(sample_test_case: TestCase) -> TestRunResult:
    """A passing result for the sample test case."""
    first, second = sample_test_case.steps
    return TestRunResult(
        case=sample_test_case,
        success=True,
        started_at=datetime(2024, 1, 1, 10, 0, 0),
        finished_at=datetime(2024, 1, 1, 10, 0, 30),
        reason="All 2 step(s) passed",
        step_results=[
            StepResult(
                step=first,
                success=True,
                ticks_used=2,
                actions=[
                    ActionTrace(
                        tick=1,
                        action_type="fill",
                        action={"type": "fill", "locator": {"kind": "label", "text": "Email"}, "text": "${ENV.EMAIL}"},
                        success=True,
                        page_url="https://example.com/login",
                        timestamp=datetime(2024, 1, 1, 10, 0, 5),
                    ),
                    ActionTrace(
                        tick=2,
                        action_type="fill",
                        action={"type": "fill", "locator": {"kind": "label", "text": "Password"}, "text": "${ENV.PASSWORD}"},
                        success=True,
                        page_url="https://example.com/login",
                        timestamp=datetime(2024, 1, 1, 10, 0, 10),
                    ),
                ],
            ),
            StepResult(
                step=second,
                success=True,
                ticks_used=1,
                actions=[
                    ActionTrace(
                        tick=1,
                        action_type="click",
                        action={"type": "click", "locator": {"kind": "role", "role": "button", "name": "Sign in"}},
                        success=True,
                        page_url="https://example.com/dashboard",
                        timestamp=datetime(2024, 1, 1, 10, 0, 15),
                    ),
                ],
                expectations=[ExpectationResult(second.expect[0], True)],
            ),
        ],
        browser_type="chromium",
        final_url="https://example.com/dashboard",
    )


@pytest.fixture
def failed_test_result(sample_test_case: TestCase, temp_dir: Path) -> TestRunResult:
    """A result whose second step exhausted its tick budget."""
    first, second = sample_test_case.steps
    return TestRunResult(
        case=sample_test_case,
        success=False,
        started_at=datetime(2024, 1, 1, 10, 0, 0),
        finished_at=datetime(2024, 1, 1, 10, 1, 0),
        reason="Step 2 failed: Max ticks (5) exceeded without meeting expectations",
        step_results=[
            StepResult(step=first, success=True, ticks_used=1),
            StepResult(
                step=second,
                success=False,
                ticks_used=5,
                actions=[
                    ActionTrace(
                        tick=1,
                        action_type="click",
                        action={"type": "click", "locator": {"kind": "css", "selector": "#submit"}},
                        success=False,
                        page_url="https://example.com/login",
                        error='Locator not found: css="#submit"',
                    ),
                ],
                expectations=[
                    ExpectationResult(
                        second.expect[0],
                        False,
                        'URL "https://example.com/login" does not contain "/dashboard"',
                    )
                ],
                error="Max ticks (5) exceeded without meeting expectations",
            ),
        ],
        browser_type="chromium",
        final_url="https://example.com/login",
        debug_dir=temp_dir / "debug" / "login",
    )


@pytest.fixture
def sample_recording() -> Dict[str, Any]:
    """A DevTools Recorder export for a sign-in flow."""
    return {
        "title": "Sign In Flow",
        "steps": [
            {"type": "setViewport", "width": 1280, "height": 800, "deviceScaleFactor": 1, "isMobile": False,
             "hasTouch": False, "isLandscape": False},
            {"type": "navigate", "url": "https://example.com/login"},
            {
                "type": "change",
                "value": "user@example.com",
                "selectors": [["aria/Email"], ["#email"], ["xpath///*[@id=\"email\"]"]],
            },
            {
                "type": "click",
                "offsetX": 10,
                "offsetY": 5,
                "selectors": [["div.form > div:nth-child(3) > button"], ["aria/Sign in[role=\"button\"]"]],
            },
        ],
    }


@pytest.fixture
def recordings_config(temp_dir: Path, monkeypatch):
    """RecordingsConfig rooted in a temporary directory, strict mode off."""
    from config import RecordingsConfig

    monkeypatch.delenv("CI", raising=False)
    monkeypatch.delenv("RECORDINGS_STRICT_SELECTORS", raising=False)
    return RecordingsConfig(
        recordings_dir=temp_dir / "recordings",
        output_dir=temp_dir / "generated",
        overrides_dir=temp_dir / "recordings" / "overrides",
        assertions_dir=temp_dir / "recordings" / "assertions",
        test_results_dir=temp_dir / "test-results",
    )


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
