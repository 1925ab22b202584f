"""Score recorded selector alternatives and render locators as Playwright Python code.

DevTools Recorder exports each interaction's ``selectors`` as a list of
alternatives; every alternative is itself a list of strings, one per frame
nesting level. Only the first (top-level) string of each alternative is
scored; deeper frames are reported through ``frame_depth``.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from recorder.schemas import LocatorOverride

GENERATED_TOKEN_RE = re.compile(
    r"(?:[a-z]{1,3}[A-Z][a-zA-Z0-9]{6,}|[a-f0-9]{8,}|_[a-zA-Z0-9]{5,}_|css-[a-z0-9]{5,}|sc-[a-zA-Z]{4,}|styled-[a-z])"
)
ARIA_RE = re.compile(r'^aria/(.+?)(?:\[role="([^"]+)"\])?$')
ID_RE = re.compile(r"^#([\w-]+)$")
TEST_ATTR_RE = re.compile(r"""^\[data-(testid|test-id|test|cy)=["']?([^"'\]]+)["']?\]$""")
NTH_RE = re.compile(r"nth-(?:child|of-type)")
COMBINATOR_RE = re.compile(r"\s*[>\s+~]\s*")

BASE_CSS_SCORE = 60


@dataclass(frozen=True)
class ScoredSelector:
    """The chosen locator for one recorded interaction and why it was chosen."""

    code: str
    score: int
    raw: str
    brittle: bool
    reason: str
    locator: LocatorOverride
    frame_depth: int = 1


def py_str(value: str) -> str:
    """A double-quoted Python string literal."""
    return json.dumps(value, ensure_ascii=False)


def looks_generated(token: str) -> bool:
    return bool(GENERATED_TOKEN_RE.search(token))


def locator_to_code(locator: LocatorOverride) -> str:
    """Render a descriptor as a sync-API ``page.*`` locator expression."""
    if locator.kind == "role":
        args = [py_str(locator.role or "button")]
        if locator.name is not None:
            args.append(f"name={py_str(locator.name)}")
        if locator.exact is not None:
            args.append(f"exact={locator.exact}")
        return f"page.get_by_role({', '.join(args)})"
    if locator.kind == "label":
        text = py_str(locator.text or locator.name or "")
        if locator.exact is not None:
            return f"page.get_by_label({text}, exact={locator.exact})"
        return f"page.get_by_label({text})"
    if locator.kind == "text":
        exact = locator.exact if locator.exact is not None else True
        return f"page.get_by_text({py_str(locator.text or locator.name or '')}, exact={exact})"
    if locator.kind == "testid":
        return f"page.get_by_test_id({py_str(locator.id or '')})"
    return f"page.locator({py_str(locator.selector or 'body')})"


def _scored(locator: LocatorOverride, score: int, raw: str, brittle: bool, reason: str) -> ScoredSelector:
    return ScoredSelector(
        code=locator_to_code(locator),
        score=score,
        raw=raw,
        brittle=brittle,
        reason=reason,
        locator=locator,
    )


def score_css_selector(raw: str, css: str) -> ScoredSelector:
    """Baseline 60, with fixed scores for stable shapes and cumulative penalties."""
    if css.startswith("css/"):
        css = css[4:]

    id_match = ID_RE.match(css)
    if id_match:
        return _scored(LocatorOverride(kind="css", selector=css), 70, raw, False, "stable #id")

    attr_match = TEST_ATTR_RE.match(css)
    if attr_match:
        attribute, value = attr_match.groups()
        if attribute == "testid":
            return _scored(LocatorOverride(kind="testid", id=value), 85, raw, False, "data-testid")
        # get_by_test_id only matches data-testid, so other test attributes stay CSS
        return _scored(LocatorOverride(kind="css", selector=css), 85, raw, False, "data-test attribute")

    score = BASE_CSS_SCORE
    brittle = False
    reasons: List[str] = []

    if NTH_RE.search(css):
        score -= 25
        brittle = True
        reasons.append("nth-child/nth-of-type")

    combinators = len(COMBINATOR_RE.findall(css))
    if combinators > 3:
        score -= 10 * (combinators - 3)
        brittle = True
        reasons.append(f"long chain ({combinators} combinators)")

    class_count = css.count(".")
    if class_count > 3:
        score -= 5 * (class_count - 3)
        brittle = True
        reasons.append(f"many classes ({class_count})")

    if looks_generated(css):
        score -= 20
        brittle = True
        reasons.append("generated-looking token")

    reason = f"CSS ({', '.join(reasons)})" if reasons else "CSS selector"
    return _scored(LocatorOverride(kind="css", selector=css), max(0, score), raw, brittle, reason)


def score_selector(raw: str) -> ScoredSelector:
    """Classify one raw selector string by prefix and score it."""
    trimmed = raw.strip()

    if trimmed.startswith("aria/"):
        match = ARIA_RE.match(trimmed)
        if match:
            name, role = match.group(1).strip(), match.group(2)
            if role:
                return _scored(
                    LocatorOverride(kind="role", role=role, name=name), 100, trimmed, False, "ARIA role+name"
                )
            return _scored(LocatorOverride(kind="label", text=name), 90, trimmed, False, "ARIA label")

    if trimmed.startswith("text/") and len(trimmed) > 5:
        return _scored(
            LocatorOverride(kind="text", text=trimmed[5:].strip(), exact=True), 80, trimmed, False, "text content"
        )

    if trimmed.startswith("xpath/") and len(trimmed) > 6:
        return _scored(
            LocatorOverride(kind="css", selector=f"xpath={trimmed[6:]}"), 20, trimmed, True, "XPath (brittle)"
        )

    if trimmed.startswith("pierce/"):
        return score_css_selector(trimmed, trimmed[7:])

    return score_css_selector(trimmed, trimmed)


BODY_FALLBACK = ScoredSelector(
    code='page.locator("body")',
    score=0,
    raw="body",
    brittle=True,
    reason="no selectors provided",
    locator=LocatorOverride(kind="css", selector="body"),
)


def select_best_selector(alternatives: Optional[Sequence[Sequence[str]]]) -> ScoredSelector:
    """
    Pick the highest scoring alternative.

    Ties keep the earlier alternative. With no usable alternatives the
    ``body`` fallback is returned, scored 0 and flagged brittle.
    """
    candidates: List[ScoredSelector] = []
    for alternative in alternatives or []:
        if not alternative:
            continue
        scored = score_selector(alternative[0])
        if len(alternative) > 1:
            scored = replace(scored, frame_depth=len(alternative))
        candidates.append(scored)

    if not candidates:
        return BODY_FALLBACK

    # sorted() is stable, so earlier alternatives win ties
    return sorted(candidates, key=lambda c: c.score, reverse=True)[0]
