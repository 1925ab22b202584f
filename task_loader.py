"""Filesystem-backed loader for goal-driven E2E test cases."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set
from urllib.parse import urlparse

import yaml
from pydantic import ValidationError

from action_schema import summarize_validation_error
from exceptions import TestCaseLoadError, TestCaseValidationError
from expectations import Expectation
from test_types import TestCase, TestStep

TEST_CASE_SUFFIXES = {".yaml", ".yml", ".json"}


def _as_set(value: Any) -> Set[str]:
    """Convert value to set of strings."""
    if value is None:
        return set()
    if isinstance(value, (list, set, tuple)):
        return {str(item) for item in value}
    if isinstance(value, str):
        return {value}
    raise TestCaseLoadError(f"Expected string, list, or set, got {type(value).__name__}")


def _is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def _parse_step(data: Any, index: int, case_id: str) -> TestStep:
    field_name = f"steps[{index}]"
    if isinstance(data, str):
        data = {"goal": data}
    if not isinstance(data, dict):
        raise TestCaseValidationError("Step must be a mapping or a goal string", case_id=case_id, field=field_name)

    goal = data.get("goal")
    if not goal or not isinstance(goal, str):
        raise TestCaseValidationError("Step is missing a 'goal'", case_id=case_id, field=f"{field_name}.goal")

    raw_expect = data.get("expect", data.get("expectations")) or []
    if not isinstance(raw_expect, list):
        raise TestCaseValidationError("'expect' must be a list", case_id=case_id, field=f"{field_name}.expect")

    expectations: List[Expectation] = []
    for j, item in enumerate(raw_expect):
        try:
            expectations.append(Expectation.model_validate(item))
        except ValidationError as exc:
            raise TestCaseValidationError(
                f"Invalid expectation: {summarize_validation_error(exc, limit=2)}",
                case_id=case_id,
                field=f"{field_name}.expect[{j}]",
            ) from exc

    return TestStep(goal=goal, expect=expectations)


def _parse_test_case(data: Dict[str, Any], fallback_id: str, source_path: Optional[Path] = None) -> TestCase:
    """Parse a dictionary into a TestCase."""
    if not isinstance(data, dict):
        raise TestCaseLoadError("Test case payload must be a mapping")

    case_id = str(data.get("id") or fallback_id)
    name = str(data.get("name") or case_id)

    base_url = data.get("base_url") or data.get("baseUrl")
    if not base_url or not isinstance(base_url, str):
        raise TestCaseValidationError("Test case is missing 'base_url'", case_id=case_id, field="base_url")
    if not _is_absolute_url(base_url):
        raise TestCaseValidationError(f"'base_url' is not a valid URL: {base_url}", case_id=case_id, field="base_url")

    variables = data.get("variables") or {}
    if not isinstance(variables, dict):
        raise TestCaseValidationError("'variables' must be a mapping", case_id=case_id, field="variables")

    raw_steps = data.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise TestCaseValidationError("Test case must define at least one step", case_id=case_id, field="steps")
    steps = [_parse_step(step, i, case_id) for i, step in enumerate(raw_steps)]

    return TestCase(
        id=case_id,
        name=name,
        base_url=base_url,
        steps=steps,
        variables={str(k): str(v) for k, v in variables.items()},
        source_path=source_path,
        tags=_as_set(data.get("tags")),
        skip=bool(data.get("skip", False)),
        skip_reason=data.get("skip_reason"),
    )


def load_test_case_file(path: Path) -> TestCase:
    """Load a single test case file (YAML or JSON)."""
    try:
        raw = path.read_text(encoding="utf-8")
        if path.suffix.lower() in {".yml", ".yaml"}:
            data = yaml.safe_load(raw)
        else:
            data = json.loads(raw)
        return _parse_test_case(data, fallback_id=path.stem, source_path=path)
    except (TestCaseLoadError, TestCaseValidationError):
        raise
    except Exception as exc:
        raise TestCaseLoadError(f"Failed to load test case file: {exc}", file_path=str(path)) from exc


def discover_test_cases(
    cases_dir: Path,
    only_ids: Optional[Iterable[str]] = None,
    include_tags: Optional[Set[str]] = None,
    exclude_tags: Optional[Set[str]] = None,
    include_skipped: bool = False,
    logger: Optional[logging.Logger] = None,
) -> List[TestCase]:
    """
    Discover and load test cases from a directory.

    Invalid files are logged and skipped; they never abort the batch.

    Args:
        cases_dir: Directory containing test case YAML/JSON files
        only_ids: If provided, only load test cases with these IDs
        include_tags: If provided, only include cases with at least one of these tags
        exclude_tags: If provided, exclude cases with any of these tags
        include_skipped: If True, include cases marked as skip=true

    Returns:
        List of TestCase objects, in file name order
    """
    log = logger or logging.getLogger("task_loader")
    cases_dir = cases_dir.expanduser().resolve()

    if not cases_dir.exists():
        raise TestCaseLoadError(f"Test case directory does not exist: {cases_dir}")

    id_filter = {cid for cid in (only_ids or [])}
    found: List[TestCase] = []

    paths = sorted(p for p in cases_dir.iterdir() if p.is_file() and p.suffix.lower() in TEST_CASE_SUFFIXES)
    for path in paths:
        try:
            case = load_test_case_file(path)
        except (TestCaseLoadError, TestCaseValidationError) as exc:
            log.error(f"Skipping invalid test case {path.name}: {exc}")
            continue

        if id_filter and case.id not in id_filter:
            continue
        if case.skip and not include_skipped:
            log.info(f"Skipping {case.id}: {case.skip_reason or 'marked skip'}")
            continue
        if not case.matches_filter(include_tags, exclude_tags):
            continue

        found.append(case)

    if id_filter:
        missing = id_filter - {c.id for c in found}
        if missing:
            raise TestCaseLoadError(f"Test cases not found: {', '.join(sorted(missing))}")

    return found


def validate_test_case(data: Any) -> List[str]:
    """
    Validate test case data without loading.

    Returns list of validation errors (empty if valid).
    """
    try:
        _parse_test_case(data, fallback_id="<inline>")
    except TestCaseValidationError as exc:
        location = f"{exc.field}: " if exc.field else ""
        return [f"{location}{exc.message}"]
    except TestCaseLoadError as exc:
        return [exc.message]
    return []
