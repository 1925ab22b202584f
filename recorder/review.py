"""LLM-assisted locator override reviewer for failing replay scripts.

Reads one recording plus a captured failure context (the accessibility
snapshot written next to a failing test) and proposes overrides for
``recordings/overrides/<slug>.yaml``. When the model call, its parsing, or
its validation fails, a deterministic heuristic proposes an override from the
failure context alone.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import yaml
from pydantic import ValidationError

from action_schema import extract_json_payload, summarize_validation_error
from config.models import QacrConfig, RecordingsConfig, load_config
from exceptions import LLMResponseError, QacrError, RecordingLoadError, RecordingValidationError
from llm import LLMProvider, create_provider
from recorder.generate import list_recording_files, load_overrides_file, load_recording, sanitize_filename
from recorder.schemas import (
    LocatorOverride,
    OverrideEntry,
    OverridesFile,
    Recording,
    dump_overrides,
    validate_overrides_against_recording,
)

MAX_CONTEXT_CHARS = 16000
CONTEXT_FILE_NAME = "error-context.md"

ARIA_SELECTOR_RE = re.compile(r'^aria/(.+?)(?:\[role="([^"]+)"\])?$')
ROLE_MENTION_RE = re.compile(r'-\s+([a-zA-Z][\w-]*)\s+"([^"]+)"')
STEP_MARKER_RE = re.compile(r"step\s+(\d+):\s*([a-zA-Z]+)", re.IGNORECASE)

CLICKABLE_STEP_TYPES = {"click", "doubleClick", "hover"}
CLICKABLE_ROLES = {"button", "link", "menuitem", "tab", "option"}
FORM_ROLES = {"textbox", "combobox", "spinbutton", "searchbox"}
PAYLOAD_KEYS = ("overrides", "suggested_overrides", "overrideSuggestions", "recommendations")

REVIEWER_INSTRUCTIONS = "\n".join(
    [
        "You review Playwright locators for a recorded browser flow that failed on replay.",
        "Reply with one JSON object of exactly this shape:",
        '{"overrides":[{"step":number,"action":string,"locator":{"kind":"role|label|text|testid|css",'
        '"role?":string,"name?":string,"exact?":boolean,"text?":string,"id?":string,"selector?":string}}]}',
        "Rules:",
        "- step is the zero-based index of the recording step.",
        "- action must equal that step's recorded type exactly.",
        "- propose only the overrides needed to make the failing selectors robust.",
        "- prefer role, testid, label or text locators; css is a last resort.",
        "- for clickable controls prefer a role locator with the accessible name shown in the failure context.",
        "- no markdown, no commentary, no extra top-level keys.",
    ]
)


@dataclass(frozen=True)
class RoleMention:
    role: str
    name: str


@dataclass(frozen=True)
class AriaSelector:
    name: str
    role: Optional[str] = None


@dataclass
class ReviewResult:
    recording_path: Path
    context_path: Path
    output_path: Path
    proposed_count: int
    total_count: int
    dry_run: bool
    used_fallback: bool
    yaml_text: str


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def normalize_overrides_payload(payload: Any) -> Any:
    """Map the alternate shapes models tend to produce onto ``{"overrides": [...]}``."""
    if isinstance(payload, list):
        return {"overrides": payload}
    if not isinstance(payload, dict):
        return payload

    candidates = [payload.get(key) for key in PAYLOAD_KEYS]
    for wrapper in ("result", "data"):
        nested = payload.get(wrapper)
        if isinstance(nested, dict):
            candidates.append(nested.get("overrides"))

    for candidate in candidates:
        if isinstance(candidate, list):
            return {"overrides": candidate}
    return payload


def parse_review_response(raw: str) -> OverridesFile:
    """Extract, normalize and schema-validate an overrides payload from model text."""
    payload = extract_json_payload(raw)
    if payload is None:
        raise LLMResponseError("No parseable JSON object found in model response", response=raw)
    try:
        return OverridesFile.model_validate(normalize_overrides_payload(payload))
    except ValidationError as exc:
        preview = re.sub(r"\s+", " ", raw)[:280]
        raise LLMResponseError(
            f"Model response failed overrides validation: {summarize_validation_error(exc, limit=3)} | preview: {preview}",
            response=raw,
        ) from exc


def merge_override_entries(
    existing: Iterable[OverrideEntry],
    proposed: Iterable[OverrideEntry],
) -> List[OverrideEntry]:
    """Merge by ``(step, action)``; proposed entries win. Sorted by step, then action."""
    merged: Dict[tuple, OverrideEntry] = {}
    for entry in existing:
        merged[entry.key] = entry
    for entry in proposed:
        merged[entry.key] = entry
    return sorted(merged.values(), key=lambda e: (e.step, e.action))


# ---------------------------------------------------------------------------
# Heuristic fallback
# ---------------------------------------------------------------------------


def parse_aria_selector(selector: str) -> Optional[AriaSelector]:
    match = ARIA_SELECTOR_RE.match(selector)
    if not match:
        return None
    name = match.group(1).strip()
    if not name:
        return None
    role = match.group(2).strip() if match.group(2) else None
    return AriaSelector(name=name, role=role)


def flatten_step_selectors(step: Dict[str, Any]) -> List[str]:
    """Top-level selector string of every alternative on a raw step."""
    selectors = step.get("selectors")
    if not isinstance(selectors, list):
        return []
    flat: List[str] = []
    for alternative in selectors:
        if isinstance(alternative, list) and alternative and isinstance(alternative[0], str):
            flat.append(alternative[0])
        elif isinstance(alternative, str):
            flat.append(alternative)
    return flat


def extract_role_mentions(context: str) -> List[RoleMention]:
    """``- role "name"`` lines from an accessibility snapshot, in order."""
    return [
        RoleMention(role=m.group(1).lower(), name=m.group(2).strip())
        for m in ROLE_MENTION_RE.finditer(context)
    ]


def find_likely_step_index(recording: Recording, context: str) -> Optional[int]:
    """Score each step against role/name mentions in the failure context."""
    mentions = extract_role_mentions(context)
    if not mentions:
        return None

    best_index, best_score = -1, 0
    for index, step in enumerate(recording.steps):
        selectors = flatten_step_selectors(step)
        lowered = [s.lower() for s in selectors]
        aria = [a for a in map(parse_aria_selector, selectors) if a]

        score = 2 if step.get("type") in CLICKABLE_STEP_TYPES else 0
        for mention in mentions:
            name = mention.name.lower()
            for selector in aria:
                if selector.name.lower() == name:
                    score += 12
                if selector.role and selector.role.lower() == mention.role:
                    score += 6
            if any(name in s for s in lowered):
                score += 4

        if score > best_score:
            best_index, best_score = index, score

    return best_index if best_score > 0 else None


def _role_override(role: str, name: str) -> LocatorOverride:
    return LocatorOverride(kind="role", role=role, name=name, exact=True)


def infer_locator(step_type: str, selectors: Sequence[str], context: str) -> Optional[LocatorOverride]:
    """Best-guess descriptor for a failing step from the failure context's own mentions."""
    aria = [a for a in (parse_aria_selector(s) for s in selectors if s.startswith("aria/")) if a]
    mentions = extract_role_mentions(context)

    if step_type in CLICKABLE_STEP_TYPES:
        aria_names = {a.name.lower() for a in aria}
        for mention in mentions:
            if mention.role in CLICKABLE_ROLES and mention.name.lower() in aria_names:
                return _role_override(mention.role, mention.name)
        for mention in mentions:
            if mention.role in CLICKABLE_ROLES:
                return _role_override(mention.role, mention.name)
        for selector in aria:
            if selector.role:
                return _role_override(selector.role, selector.name)
        if aria:
            return _role_override("button", aria[0].name)

    if step_type == "change":
        for mention in mentions:
            if mention.role in FORM_ROLES:
                return _role_override(mention.role, mention.name)
        if aria:
            return LocatorOverride(kind="label", text=aria[0].name)

    if step_type == "waitForElement":
        for mention in mentions:
            if mention.name:
                return _role_override(mention.role, mention.name)

    return None


def suggest_overrides_from_context(recording: Recording, context: str) -> OverridesFile:
    """Deterministic single-override proposal; empty when nothing can be inferred."""
    marker = STEP_MARKER_RE.search(context)
    index = int(marker.group(1)) if marker else find_likely_step_index(recording, context)
    if index is None or index < 0 or index >= len(recording.steps):
        return OverridesFile(overrides=[])

    step = recording.steps[index]
    step_type = step.get("type")
    if not isinstance(step_type, str):
        return OverridesFile(overrides=[])

    locator = infer_locator(step_type, flatten_step_selectors(step), context)
    if locator is None:
        return OverridesFile(overrides=[])
    return OverridesFile(overrides=[OverrideEntry(step=index, action=step_type, locator=locator)])


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def build_step_digest(recording: Recording) -> str:
    lines = []
    for index, step in enumerate(recording.steps):
        selectors = step.get("selectors")
        rendered = json.dumps(selectors) if isinstance(selectors, list) else "none"
        lines.append(f"{index}. type={step.get('type', 'unknown')} selectors={rendered}")
    return "\n".join(lines)


def build_review_prompt(
    recording_path: Path,
    recording: Recording,
    context_path: Path,
    context: str,
    existing: Optional[OverridesFile],
) -> str:
    clipped = context
    if len(context) > MAX_CONTEXT_CHARS:
        clipped = f"{context[:MAX_CONTEXT_CHARS]}\n...[truncated]"
    existing_payload = dump_overrides(existing) if existing else {"overrides": []}

    return "\n".join(
        [
            f"Recording path: {recording_path}",
            f"Recording title: {recording.title}",
            f"Failure context path: {context_path}",
            "",
            "Failure context:",
            clipped,
            "",
            "Recording step digest:",
            build_step_digest(recording),
            "",
            "Recording JSON:",
            json.dumps(recording.model_dump(mode="json"), indent=2),
            "",
            "Existing overrides JSON:",
            json.dumps(existing_payload, indent=2),
        ]
    )


def format_yaml(overrides: OverridesFile) -> str:
    text = yaml.safe_dump(dump_overrides(overrides), sort_keys=False, allow_unicode=True)
    return text if text.endswith("\n") else text + "\n"


# ---------------------------------------------------------------------------
# Resolution of inputs
# ---------------------------------------------------------------------------


def resolve_recording_path(config: RecordingsConfig, recording_arg: Optional[str] = None) -> Path:
    """Accept a path, file stem, slug or title; auto-select only a sole recording."""
    files = list_recording_files(config)
    if recording_arg:
        direct = Path(recording_arg).expanduser()
        if direct.is_file():
            return direct

    if not files:
        raise RecordingLoadError(f"No recording JSON files found in {config.recordings_dir}.")

    if not recording_arg:
        if len(files) == 1:
            return files[0]
        options = "\n".join(f"- {f}" for f in files)
        raise RecordingLoadError(f"Multiple recordings found. Pass --recording.\n{options}")

    query = recording_arg.lower()
    query_slug = sanitize_filename(recording_arg)
    for path in files:
        stem = path.stem.lower()
        if stem == query or sanitize_filename(stem) == query_slug:
            return path
    for path in files:
        try:
            title = load_recording(path).title
        except (RecordingLoadError, RecordingValidationError):
            continue
        if title.lower() == query or sanitize_filename(title) == query_slug:
            return path

    raise RecordingLoadError(f'Could not resolve recording "{recording_arg}".')


def resolve_context_path(config: RecordingsConfig, context_arg: Optional[str] = None) -> Path:
    """Explicit path, else the most recently modified failure context under test results."""
    if context_arg:
        path = Path(context_arg).expanduser()
        if path.is_file():
            return path
        raise RecordingLoadError(f'Could not find context file "{context_arg}".')

    root = config.test_results_dir
    contexts = list(root.rglob(CONTEXT_FILE_NAME)) if root.exists() else []
    if not contexts:
        raise RecordingLoadError(
            f"No {CONTEXT_FILE_NAME} files found in {root}. Run the replay tests first or pass --context."
        )
    return max(contexts, key=lambda p: p.stat().st_mtime)


# ---------------------------------------------------------------------------
# Review flow
# ---------------------------------------------------------------------------


class OverrideReviewer:
    """Proposes, merges, validates and persists locator overrides for one recording."""

    def __init__(
        self,
        config: RecordingsConfig,
        llm: LLMProvider,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.llm = llm
        self.logger = logger or logging.getLogger("recorder.review")

    async def propose(self, recording: Recording, prompt: str, context: str) -> tuple[OverridesFile, bool]:
        """Model proposal, or the heuristic one when the model path fails or proposes nothing."""
        try:
            raw = await self.llm.generate(REVIEWER_INSTRUCTIONS, prompt, temperature=0.0)
            proposed = parse_review_response(raw)
            validate_overrides_against_recording(proposed, recording)
        except QacrError as exc:
            fallback = suggest_overrides_from_context(recording, context)
            if not fallback.overrides:
                raise
            self.logger.warning(
                f"Model review unavailable ({exc.message}); using heuristic override inferred from failure context"
            )
            return fallback, True

        if not proposed.overrides:
            fallback = suggest_overrides_from_context(recording, context)
            if fallback.overrides:
                self.logger.warning("Model returned no overrides; using heuristic override inferred from failure context")
                return fallback, True
        return proposed, False

    async def review(
        self,
        recording_arg: Optional[str] = None,
        context_arg: Optional[str] = None,
        dry_run: bool = False,
    ) -> ReviewResult:
        recording_path = resolve_recording_path(self.config, recording_arg)
        context_path = resolve_context_path(self.config, context_arg)

        recording = load_recording(recording_path)
        context = context_path.read_text(encoding="utf-8")
        output_path = self.config.overrides_dir / f"{sanitize_filename(recording.title)}.yaml"
        existing = load_overrides_file(output_path) if output_path.exists() else None

        prompt = build_review_prompt(recording_path, recording, context_path, context, existing)
        proposed, used_fallback = await self.propose(recording, prompt, context)

        merged = OverridesFile(
            overrides=merge_override_entries(existing.overrides if existing else [], proposed.overrides)
        )
        validate_overrides_against_recording(merged, recording)
        text = format_yaml(merged)

        if not dry_run:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(text, encoding="utf-8")
            self.logger.info(f"Wrote {output_path}")

        return ReviewResult(
            recording_path=recording_path,
            context_path=context_path,
            output_path=output_path,
            proposed_count=len(proposed.overrides),
            total_count=len(merged.overrides),
            dry_run=dry_run,
            used_fallback=used_fallback,
            yaml_text=text,
        )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Propose locator overrides for a recording from a replay failure context",
    )
    parser.add_argument("--recording", help="Recording JSON path, file name, title, or slug")
    parser.add_argument("--context", help=f"Failure context path (default: newest {CONTEXT_FILE_NAME})")
    parser.add_argument("--model", help="Override the model name")
    parser.add_argument("--dry-run", action="store_true", help="Print YAML without writing the overrides file")
    parser.add_argument("--config", type=Path, help="Config file (JSON or YAML)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser


async def run_review(args: argparse.Namespace, config: QacrConfig, logger: logging.Logger) -> ReviewResult:
    llm = create_provider(config.agent, logger)
    reviewer = OverrideReviewer(config.recordings, llm, logger)
    result = await reviewer.review(args.recording, args.context, dry_run=args.dry_run)
    if result.dry_run:
        print(result.yaml_text, end="")
    mode = "dry-run" if result.dry_run else "written"
    logger.info(
        f"Review completed ({mode}): {result.proposed_count} proposed, "
        f"{result.total_count} total -> {result.output_path}"
    )
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else os.getenv("LOG_LEVEL", "INFO").upper(),
        format="[%(levelname)s] %(message)s",
    )
    logger = logging.getLogger("qacr-review")

    try:
        config = load_config(args.config, cli_overrides={"model": args.model})
        asyncio.run(run_review(args, config, logger))
    except KeyboardInterrupt:
        return 130
    except QacrError as exc:
        logger.error(exc.message)
        return 1
    except OSError as exc:
        logger.error(f"File error: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
