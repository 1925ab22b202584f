"""Per-tick page observations: URL, title, accessibility snapshot, and visible text."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from playwright.async_api import Page

from test_types import ActionTrace
from variables import VARIABLE_PATTERN

HISTORY_WINDOW = 5

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by from as is was are were been be
    have has had do does did will would could should may might must shall can need
    click type enter select check fill press wait then after before when if that this it
    """.split()
)


@dataclass(frozen=True)
class Observation:
    """Immutable snapshot of page state handed to the prompt builder."""

    url: str
    title: str
    aria_snapshot: str
    short_text: str
    tick: int
    last_error: Optional[str] = None
    previous_actions: Tuple[ActionTrace, ...] = ()


def extract_keywords(text: str) -> List[str]:
    """Lowercased content words from a goal, in first-seen order; placeholders are skipped."""
    words = re.sub(r"[^\w\s]", " ", VARIABLE_PATTERN.sub(" ", text).lower()).split()
    seen: List[str] = []
    for word in words:
        if len(word) > 2 and word not in STOP_WORDS and word not in seen:
            seen.append(word)
    return seen


def truncate_text(text: str, max_chars: int) -> str:
    normalized = re.sub(r"\s+", " ", text).strip()
    if len(normalized) <= max_chars:
        return normalized
    return normalized[: max_chars - 20] + " ... [truncated]"


def truncate_with_structure(snapshot: str, max_chars: int) -> str:
    """Cut a snapshot on line boundaries so the tree indentation stays intact."""
    if len(snapshot) <= max_chars:
        return snapshot

    budget = max_chars - 50
    kept: List[str] = []
    used = 0
    for line in snapshot.split("\n"):
        if used + len(line) + 1 > budget:
            break
        kept.append(line)
        used += len(line) + 1
    return "\n".join(kept) + "\n... [truncated]"


def filter_aria_snapshot(snapshot: str, keywords: Sequence[str], max_chars: int) -> str:
    """
    Keep the snapshot under ``max_chars``, putting keyword-relevant lines first.

    Without keywords the snapshot is truncated line by line. With keywords,
    matching lines come first; the remaining budget, if more than 100 chars,
    is filled with the other lines after a ``...`` separator.
    """
    if len(snapshot) <= max_chars:
        return snapshot
    if not keywords:
        return truncate_with_structure(snapshot, max_chars)

    relevant: List[str] = []
    other: List[str] = []
    for line in snapshot.split("\n"):
        lowered = line.lower()
        if any(keyword in lowered for keyword in keywords):
            relevant.append(line)
        else:
            other.append(line)

    result = "\n".join(relevant)
    remaining = max_chars - len(result)
    if remaining > 100:
        result += "\n...\n" + "\n".join(other)[: remaining - 10]
    return result[:max_chars]


async def _aria_snapshot(page: Page) -> str:
    try:
        return await page.locator("body").aria_snapshot()
    except Exception as exc:
        return f"[Error getting ARIA snapshot: {exc}]"


async def _visible_text(page: Page) -> str:
    try:
        return await page.locator("body").inner_text(timeout=5000)
    except Exception:
        return ""


async def collect_observation(
    page: Page,
    tick: int,
    goal: str = "",
    previous_actions: Iterable[ActionTrace] = (),
    last_error: Optional[str] = None,
    aria_snapshot_max_chars: int = 8000,
    short_text_max_chars: int = 2000,
) -> Observation:
    """Capture the current page state for one tick."""
    try:
        title = await page.title()
    except Exception:
        title = ""

    snapshot = await _aria_snapshot(page)
    keywords = extract_keywords(goal) if goal else []
    history = tuple(previous_actions)[-HISTORY_WINDOW:]

    return Observation(
        url=page.url,
        title=title,
        aria_snapshot=filter_aria_snapshot(snapshot, keywords, aria_snapshot_max_chars),
        short_text=truncate_text(await _visible_text(page), short_text_max_chars),
        tick=tick,
        last_error=last_error,
        previous_actions=history,
    )
