"""System and per-tick prompts for the browser agent."""
from __future__ import annotations

from typing import Sequence

from expectations import Expectation
from observation import Observation
from variables import mask_secrets

__all__ = ["build_system_prompt", "build_user_prompt", "mask_secrets"]


def build_system_prompt() -> str:
    """Fixed instructions plus the action schema the model must answer with."""
    return """You are a browser automation agent. Reach the goal by choosing exactly ONE action per reply, based on the current page state.

RULES:
1. Reply with a single JSON object that matches the schema below and nothing else.
2. Build locators only from roles, names and text present in the ARIA snapshot.
3. Never guess selectors that are not visible in the snapshot.
4. Prefer locators in this order: role, label, text, testid, css. Use css only as a last resort.
5. For role locators copy the role and the accessible name exactly as shown in the snapshot.
6. Placeholders like ${ENV.NAME} are secrets. Copy them verbatim into "text", "value" or "url"; the runner substitutes them.
7. The runner verifies expected outcomes after every action and calls you again until they pass.
8. If the goal cannot be reached, reply with a "fail" action and a reason.

ACTION SCHEMA:
{
  "thinking": "short reasoning (optional)",
  "action": {
    "type": "click" | "fill" | "press" | "select" | "check" | "wait" | "goto" | "assert" | "fail",
    "locator": {                      // click, fill, select, check; optional for press
      "kind": "role" | "label" | "testid" | "text" | "css" | "active",
      // role: "role", "name", optional "exact"
      // label, text: "text", optional "exact"
      // testid: "id"
      // css: "selector"
      // active: the focused element, no other fields
    },
    "text": "...",                    // fill
    "key": "Enter",                   // press
    "value": "...",                   // select, assert
    "checked": true,                  // check
    "ms": 500,                        // wait, 100 to 10000
    "url": "https://...",             // goto
    "assertType": "visible_text" | "url_contains" | "locator_visible",  // assert
    "reason": "...",                  // fail
    "description": "what this action does (optional)"
  }
}

LOCATOR EXAMPLES:
- Button: {"kind": "role", "role": "button", "name": "Sign in"}
- Link: {"kind": "role", "role": "link", "name": "Pricing"}
- Text box: {"kind": "role", "role": "textbox", "name": "Email"}
- Labelled field: {"kind": "label", "text": "Password"}
- Visible text: {"kind": "text", "text": "Forgot password?"}
- Focused element: {"kind": "active"}"""


def _format_expectations(expectations: Sequence[Expectation]) -> str:
    return "\n".join(f'  - {e.type}: "{e.value}"' for e in expectations)


def build_user_prompt(
    goal: str,
    expectations: Sequence[Expectation],
    observation: Observation,
) -> str:
    """Render the goal, expectations and current observation for one tick."""
    parts = [f"GOAL: {goal}"]

    if expectations:
        parts.append(f"\nEXPECTED OUTCOMES (checked by the runner):\n{_format_expectations(expectations)}")

    parts.append("\nCURRENT PAGE STATE:")
    parts.append(f"URL: {observation.url}")
    parts.append(f"Title: {observation.title}")
    parts.append(f"Tick: {observation.tick}")

    if observation.last_error:
        parts.append(f"\nLAST ERROR: {observation.last_error}")

    if observation.previous_actions:
        lines = []
        for i, trace in enumerate(observation.previous_actions, start=1):
            status = "✓" if trace.success else "✗"
            error = f" ({trace.error})" if trace.error else ""
            lines.append(f"  {i}. [{status}] {trace.action_type}{error}")
        parts.append("\nPREVIOUS ACTIONS:\n" + "\n".join(lines))

    parts.append(f"\nARIA SNAPSHOT:\n{observation.aria_snapshot}")

    if len(observation.short_text) > 100:
        parts.append(f"\nVISIBLE TEXT EXCERPT:\n{observation.short_text}")

    parts.append("\nChoose the next action toward the goal. Reply with JSON only.")
    return "\n".join(parts)
