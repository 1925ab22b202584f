"""Post-condition checks shared by the agent loop and the test harness."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional, Sequence, Tuple

from playwright.async_api import Page
from pydantic import BaseModel, ConfigDict

from action_schema import LocatorSpec
from locator import locator_from_spec

DEFAULT_EXPECTATION_TIMEOUT_MS = 3000


class Expectation(BaseModel):
    """A declared post-condition for a test step."""

    model_config = ConfigDict(frozen=True)

    type: Literal["url_contains", "visible_text", "locator_visible"]
    value: str
    locator: Optional[LocatorSpec] = None


@dataclass(frozen=True)
class ExpectationResult:
    """Outcome of evaluating one expectation."""

    expectation: Expectation
    passed: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "expectation": self.expectation.model_dump(mode="json", exclude_none=True),
            "passed": self.passed,
        }
        if self.error:
            data["error"] = self.error
        return data


async def evaluate_expectation(
    page: Page,
    expectation: Expectation,
    timeout_ms: int = DEFAULT_EXPECTATION_TIMEOUT_MS,
) -> ExpectationResult:
    """
    Evaluate a single expectation against the current page state.

    Never raises: any error from the page is converted into a failed result
    carrying the error message.
    """
    try:
        if expectation.type == "url_contains":
            url = page.url
            if expectation.value in url:
                return ExpectationResult(expectation, True)
            return ExpectationResult(
                expectation, False, f'URL "{url}" does not contain "{expectation.value}"'
            )

        if expectation.type == "visible_text":
            target = page.get_by_text(expectation.value, exact=False).first
            if await _is_visible(target, timeout_ms):
                return ExpectationResult(expectation, True)
            return ExpectationResult(expectation, False, f'Text "{expectation.value}" not visible')

        if expectation.locator is not None:
            target = locator_from_spec(page, expectation.locator).first
        else:
            target = page.get_by_text(expectation.value).first
        if await _is_visible(target, timeout_ms):
            return ExpectationResult(expectation, True)
        return ExpectationResult(expectation, False, f'Locator for "{expectation.value}" not visible')
    except Exception as exc:
        return ExpectationResult(expectation, False, f"Expectation check failed: {exc}")


async def _is_visible(locator, timeout_ms: int) -> bool:
    try:
        await locator.wait_for(state="visible", timeout=timeout_ms)
    except Exception:
        return False
    return True


async def evaluate_all_expectations(
    page: Page,
    expectations: Sequence[Expectation],
    timeout_ms: int = DEFAULT_EXPECTATION_TIMEOUT_MS,
) -> Tuple[bool, List[ExpectationResult]]:
    """Evaluate every expectation in order; overall pass only if all pass."""
    results: List[ExpectationResult] = []
    for expectation in expectations:
        results.append(await evaluate_expectation(page, expectation, timeout_ms))
    return all(r.passed for r in results), results
