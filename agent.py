"""Goal-driven browser agent: the per-step observe, prompt, act, verify loop."""
from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from playwright.async_api import Page

from action_schema import LOCATOR_ACTIONS, AssertAction, action_to_dict, parse_action
from config.models import AgentConfig
from exceptions import ActionParseError, LLMError
from expectations import Expectation, ExpectationResult, evaluate_all_expectations, evaluate_expectation
from llm import LLMProvider
from locator import check_locator, describe_locator, locator_from_spec
from observation import Observation, collect_observation
from prompts import build_system_prompt, build_user_prompt
from test_types import ActionTrace, DebugInfo, StepResult, TestStep
from variables import VARIABLE_PATTERN, has_placeholders, interpolate_variables, mask_secrets, redact_values

LOAD_STATE_TIMEOUT_MS = 5000


class AgentRunner:
    """Drives one page toward each step's goal, one model-chosen action per tick."""

    def __init__(
        self,
        page: Page,
        llm: LLMProvider,
        config: Optional[AgentConfig] = None,
        logger: Optional[logging.Logger] = None,
        variables: Optional[Mapping[str, str]] = None,
    ):
        self.page = page
        self.llm = llm
        self.config = config or AgentConfig()
        self.logger = logger or logging.getLogger("agent")
        self.variables = dict(variables or {})
        self._resolved_values: set[str] = set()

    def _interpolate(self, text: str) -> str:
        for name in VARIABLE_PATTERN.findall(text):
            value = self.variables.get(name, os.environ.get(name))
            if value:
                self._resolved_values.add(value)
        return interpolate_variables(text, self.variables, self.logger)

    def _redact(self, text: str) -> str:
        return redact_values(text, self._resolved_values)

    async def _check_expectations(
        self, expectations: List[Expectation], timeout_ms: int
    ) -> Tuple[bool, List[ExpectationResult]]:
        """
        Evaluate expectations with placeholders resolved.

        Results carry the declared expectation and a redacted error, so resolved
        values never reach reports or debug bundles.
        """
        resolved = [
            e.model_copy(update={"value": self._interpolate(e.value)}) if has_placeholders(e.value) else e
            for e in expectations
        ]
        all_passed, results = await evaluate_all_expectations(self.page, resolved, timeout_ms)
        return all_passed, [
            ExpectationResult(declared, r.passed, self._redact(r.error) if r.error else None)
            for declared, r in zip(expectations, results)
        ]

    async def execute_step(self, step: TestStep) -> StepResult:
        """
        Run the tick loop for one step until its expectations pass, the model
        gives up, or the tick budget runs out.

        The goal is sent to the model with its ``${ENV.NAME}`` placeholders
        intact; values are substituted only when an action is executed.
        """
        goal = step.goal
        expectations = list(step.expect)
        max_ticks = self.config.max_ticks
        timeout_ms = self.config.expectation_timeout_ms

        self.logger.info(
            f"Starting step: {mask_secrets(goal)} ({len(expectations)} expectation(s), budget {max_ticks} ticks)"
        )

        actions: List[ActionTrace] = []
        last_error: Optional[str] = None
        last_observation: Optional[Observation] = None
        last_response = ""
        system_prompt = build_system_prompt()

        for tick in range(1, max_ticks + 1):
            self.logger.debug(f"Tick {tick}/{max_ticks}")

            last_observation = await collect_observation(
                self.page,
                tick=tick,
                goal=goal,
                previous_actions=actions,
                last_error=last_error,
                aria_snapshot_max_chars=self.config.aria_snapshot_max_chars,
                short_text_max_chars=self.config.short_text_max_chars,
            )
            user_prompt = build_user_prompt(goal, expectations, last_observation)

            try:
                last_response = await self.llm.generate(system_prompt, user_prompt)
            except LLMError as e:
                self.logger.error(f"Model call failed on tick {tick}: {e}")
                last_error = f"LLM error: {e.message}"
                continue
            self.logger.debug(f"Model response: {last_response[:500]}")

            try:
                parsed = parse_action(last_response)
            except ActionParseError as e:
                self.logger.warning(f"Failed to parse action on tick {tick}: {e.message}")
                last_error = f"Parse error: {e.message}"
                continue

            action = parsed.action
            if parsed.thinking:
                self.logger.debug(f"Model reasoning: {parsed.thinking}")
            self.logger.info(f"Tick {tick}: {action.type}")

            if action.type == "fail":
                self.logger.warning(f"Agent gave up: {action.reason}")
                return StepResult(
                    step=step,
                    success=False,
                    ticks_used=tick,
                    actions=actions,
                    expectations=[],
                    error=f"Agent gave up: {action.reason}",
                    debug_info=DebugInfo(last_observation, last_response, last_error),
                )

            if isinstance(action, AssertAction):
                trace = await self._run_assert(action, tick, timeout_ms)
                actions.append(trace)
                last_error = None if trace.success else trace.error or "Assert failed"
                continue

            trace = await self._execute_action(action, tick)
            actions.append(trace)
            last_error = trace.error

            await self.page.wait_for_timeout(self.config.post_action_delay_ms)
            if action.type in ("click", "goto"):
                try:
                    await self.page.wait_for_load_state("domcontentloaded", timeout=LOAD_STATE_TIMEOUT_MS)
                except Exception:
                    # No navigation happened
                    self.logger.debug("No load-state change after action")

            if expectations:
                all_passed, results = await self._check_expectations(expectations, timeout_ms)
                if all_passed:
                    self.logger.info(f"Step completed on tick {tick}: all expectations met")
                    return StepResult(
                        step=step,
                        success=True,
                        ticks_used=tick,
                        actions=actions,
                        expectations=results,
                    )
                pending = [r.error for r in results if not r.passed]
                self.logger.debug(f"Expectations not yet met: {pending}")

        _, results = await self._check_expectations(expectations, timeout_ms)
        error = None
        if expectations:
            error = f"Max ticks ({max_ticks}) exceeded without meeting expectations"
            self.logger.warning(error)
        return StepResult(
            step=step,
            success=not expectations,
            ticks_used=max_ticks,
            actions=actions,
            expectations=results,
            error=error,
            debug_info=DebugInfo(last_observation, last_response, last_error) if last_observation else None,
        )

    async def _run_assert(self, action: AssertAction, tick: int, timeout_ms: int) -> ActionTrace:
        started = time.monotonic()
        expectation = Expectation(
            type=action.assert_type,
            value=self._interpolate(action.value),
            locator=action.locator,
        )
        result: ExpectationResult = await evaluate_expectation(self.page, expectation, timeout_ms)
        return ActionTrace(
            tick=tick,
            action_type=action.type,
            action=action_to_dict(action),
            success=result.passed,
            page_url=self.page.url,
            error=None if result.passed else self._redact(result.error or "Assert failed"),
            timestamp=datetime.now(),
            duration_ms=(time.monotonic() - started) * 1000,
        )

    async def _execute_action(self, action: Any, tick: int) -> ActionTrace:
        """Execute one mutating action; failures are recorded, never raised."""
        started = time.monotonic()
        timeout = self.config.action_timeout_ms
        error: Optional[str] = None

        try:
            if action.type in LOCATOR_ACTIONS:
                locator = locator_from_spec(self.page, action.locator)
                exists, count = await check_locator(locator)
                if not exists:
                    error = f"Locator not found: {describe_locator(action.locator)}"
                    self.logger.warning(error)
                else:
                    self.logger.debug(f"{action.type} on {describe_locator(action.locator)} ({count} match(es))")
                    target = locator.first
                    if action.type == "click":
                        await target.click(timeout=timeout)
                    elif action.type == "fill":
                        await target.fill(self._interpolate(action.text), timeout=timeout)
                    elif action.type == "select":
                        await target.select_option(self._interpolate(action.value), timeout=timeout)
                    elif action.checked:
                        await target.check(timeout=timeout)
                    else:
                        await target.uncheck(timeout=timeout)
            elif action.type == "press":
                if action.locator is not None:
                    await locator_from_spec(self.page, action.locator).first.press(action.key, timeout=timeout)
                else:
                    await self.page.keyboard.press(action.key)
            elif action.type == "wait":
                await self.page.wait_for_timeout(action.ms)
            elif action.type == "goto":
                await self.page.goto(self._interpolate(action.url), wait_until="domcontentloaded")
            else:
                error = f"Unsupported action type: {action.type}"
        except Exception as e:
            message = str(e).strip()
            error = self._redact(message.splitlines()[0] if message else repr(e))
            self.logger.warning(f"Action {action.type} failed: {error}")

        return ActionTrace(
            tick=tick,
            action_type=action.type,
            action=action_to_dict(action),
            success=error is None,
            page_url=self.page.url,
            error=error,
            timestamp=datetime.now(),
            duration_ms=(time.monotonic() - started) * 1000,
        )


def summarize_actions(actions: List[ActionTrace]) -> List[Dict[str, Any]]:
    """Compact JSON view of an action log for debug bundles."""
    return [trace.to_dict() for trace in actions]
