"""Resolve locator descriptors against a live Playwright page."""
from __future__ import annotations

from typing import Any, Tuple

from playwright.async_api import Locator, Page

from action_schema import (
    ActiveLocator,
    CssLocator,
    LabelLocator,
    RoleLocator,
    TestIdLocator,
    TextLocator,
)


def locator_from_spec(page: Page, spec: Any) -> Locator:
    """Map a descriptor to the matching Playwright find operation."""
    if isinstance(spec, RoleLocator):
        return page.get_by_role(spec.role, name=spec.name, exact=spec.exact)
    if isinstance(spec, LabelLocator):
        return page.get_by_label(spec.text, exact=spec.exact)
    if isinstance(spec, TestIdLocator):
        return page.get_by_test_id(spec.id)
    if isinstance(spec, TextLocator):
        return page.get_by_text(spec.text, exact=spec.exact)
    if isinstance(spec, CssLocator):
        return page.locator(spec.selector)
    if isinstance(spec, ActiveLocator):
        return page.locator(":focus").or_(page.locator("body"))
    kind = getattr(spec, "kind", type(spec).__name__)
    raise ValueError(f"Unknown locator kind: {kind}")


async def check_locator(locator: Locator) -> Tuple[bool, int]:
    """Return ``(exists, count)`` for a locator without raising."""
    try:
        count = await locator.count()
    except Exception:
        return False, 0
    return count > 0, count


def describe_locator(spec: Any) -> str:
    """Human-readable form of a descriptor for logs and prompts."""
    if isinstance(spec, RoleLocator):
        suffix = " (exact)" if spec.exact else ""
        return f'role={spec.role} name="{spec.name}"{suffix}'
    if isinstance(spec, LabelLocator):
        return f'label="{spec.text}"'
    if isinstance(spec, TestIdLocator):
        return f'testid="{spec.id}"'
    if isinstance(spec, TextLocator):
        return f'text="{spec.text}"'
    if isinstance(spec, CssLocator):
        return f'css="{spec.selector}"'
    if isinstance(spec, ActiveLocator):
        return "active element"
    return "unknown locator"
