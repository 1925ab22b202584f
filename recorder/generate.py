"""Convert DevTools Recorder JSON exports into pytest-playwright replay scripts.

Generated files are marked DO NOT EDIT: fix selectors through override
sidecars in ``recordings/overrides/<slug>.yaml`` and re-run the generator.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml
from pydantic import ValidationError

from action_schema import summarize_validation_error
from config.models import RecordingsConfig, load_config
from exceptions import (
    BrittleSelectorError,
    NoValidRecordingsError,
    QacrError,
    RecordingLoadError,
    RecordingValidationError,
)
from recorder.schemas import (
    AssertionExpect,
    AssertionsFile,
    BaseStep,
    Recording,
    OverridesFile,
    parse_step,
    validate_assertions_against_recording,
    validate_overrides_against_recording,
)
from recorder.selectors import ScoredSelector, locator_to_code, py_str, select_best_selector

GENERATOR_NAME = "qacr-generate"
HAR_MESSAGE = (
    'HAR detected (Network export). Expected DevTools Recorder JSON with top-level "title" and "steps".'
)
EXPORT_HINT = "Export from Chrome DevTools -> Recorder -> Export as JSON."
SIDECAR_SUFFIXES = (".yaml", ".yml")
LOCATOR_STEP_TYPES = frozenset({"click", "doubleClick", "change", "hover", "waitForElement"})
INDENT = "    "


def sanitize_filename(title: str) -> str:
    """Lowercase slug: non-alphanumeric runs become dashes, at most 80 chars."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:80]


def script_name(slug: str) -> str:
    """Module and test function name for a recording slug."""
    return "test_" + (slug.replace("-", "_") or "recording")


def is_har_export(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get("log"), dict) and isinstance(data["log"].get("entries"), list)


def _num(value: Optional[float]) -> str:
    if value is None:
        return "0"
    return str(int(value)) if float(value).is_integer() else str(value)


@dataclass
class SelectorReport:
    """A recorded step whose chosen selector deserves attention."""

    recording: str
    slug: str
    step: int
    type: str
    selector: ScoredSelector

    def describe(self) -> str:
        return f'{self.recording} step {self.step} ({self.type}): {self.selector.reason} - "{self.selector.raw}"'


@dataclass
class InvalidRecording:
    file: str
    reason: str


@dataclass
class GenerateResult:
    files_written: List[Path] = field(default_factory=list)
    brittle_selectors: List[SelectorReport] = field(default_factory=list)
    invalid_recordings: List[InvalidRecording] = field(default_factory=list)
    frame_warnings: List[SelectorReport] = field(default_factory=list)


@dataclass
class RenderedScript:
    source: str
    brittle_selectors: List[SelectorReport]
    frame_warnings: List[SelectorReport]


# ---------------------------------------------------------------------------
# Discovery and loading
# ---------------------------------------------------------------------------


def _display(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd().resolve()))
    except ValueError:
        return str(path)


def list_recording_files(config: RecordingsConfig) -> List[Path]:
    """Every ``*.json`` under the recordings directory, excluding sidecar directories."""
    root = config.recordings_dir
    if not root.exists():
        return []
    excluded = [p.resolve() for p in (config.overrides_dir, config.assertions_dir)]
    excluded.extend(root.resolve() / name for name in ("overrides", "assertions", "node_modules"))
    files = []
    for path in sorted(root.rglob("*.json")):
        resolved = path.resolve()
        if any(resolved.is_relative_to(ex) for ex in excluded):
            continue
        files.append(path)
    return files


def parse_recording(data: Any) -> Recording:
    """Validate decoded JSON as a recording, including each known step's typed schema."""
    try:
        recording = Recording.model_validate(data)
    except ValidationError as exc:
        if is_har_export(data):
            raise RecordingValidationError(HAR_MESSAGE) from exc
        raise RecordingValidationError(
            f"schema mismatch ({summarize_validation_error(exc, limit=2)})"
        ) from exc

    for index, raw_step in enumerate(recording.steps):
        try:
            parse_step(raw_step)
        except ValidationError as exc:
            raise RecordingValidationError(
                f"schema mismatch (steps.{index}: {summarize_validation_error(exc, limit=2)})"
            ) from exc
    return recording


def load_recording(path: Path) -> Recording:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RecordingLoadError(f"could not read file ({exc})", file_path=str(path)) from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RecordingValidationError(f"invalid JSON ({exc})") from exc
    return parse_recording(data)


def find_sidecar(directory: Path, slug: str) -> Optional[Path]:
    for suffix in SIDECAR_SUFFIXES:
        candidate = directory / f"{slug}{suffix}"
        if candidate.exists():
            return candidate
    return None


def load_overrides_file(path: Path) -> OverridesFile:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return OverridesFile.model_validate(data)
    except yaml.YAMLError as exc:
        raise RecordingValidationError(f"invalid overrides YAML in {path.name} ({exc})") from exc
    except ValidationError as exc:
        raise RecordingValidationError(
            f"invalid overrides sidecar {path.name} ({summarize_validation_error(exc, limit=3)})"
        ) from exc


def load_assertions_file(path: Path) -> AssertionsFile:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return AssertionsFile.model_validate(data)
    except yaml.YAMLError as exc:
        raise RecordingValidationError(f"invalid assertions YAML in {path.name} ({exc})") from exc
    except ValidationError as exc:
        raise RecordingValidationError(
            f"invalid assertions sidecar {path.name} ({summarize_validation_error(exc, limit=3)})"
        ) from exc


# ---------------------------------------------------------------------------
# Code templates
# ---------------------------------------------------------------------------


def _interaction(locator_code: str, call: str) -> List[str]:
    return [
        f"locator = {locator_code}",
        "expect(locator).to_be_visible()",
        f"locator.{call}",
    ]


def step_to_code(step: BaseStep, locator_code: Optional[str]) -> List[str]:
    """Lines of Python for one recorded step; unknown types become a comment."""
    kind = step.type
    if kind == "navigate":
        return [f"page.goto({py_str(step.url)})", 'page.wait_for_load_state("domcontentloaded")']
    if kind == "click":
        if step.button == "secondary":
            return _interaction(locator_code, 'click(button="right")')
        if step.button == "middle":
            return _interaction(locator_code, 'click(button="middle")')
        return _interaction(locator_code, "click()")
    if kind == "doubleClick":
        return _interaction(locator_code, "dblclick()")
    if kind == "change":
        return _interaction(locator_code, f"fill({py_str(step.value)})")
    if kind == "keyDown":
        return [f"page.keyboard.down({py_str(step.key)})"]
    if kind == "keyUp":
        return [f"page.keyboard.up({py_str(step.key)})"]
    if kind == "scroll":
        x, y = _num(step.x), _num(step.y)
        if step.selectors:
            return [f"{locator_code}.evaluate({py_str(f'(el) => el.scrollBy({x}, {y})')})"]
        return [f"page.mouse.wheel({x}, {y})"]
    if kind == "hover":
        return _interaction(locator_code, "hover()")
    if kind == "setViewport":
        return [f'page.set_viewport_size({{"width": {step.width}, "height": {step.height}}})']
    if kind == "waitForElement":
        if step.visible is False:
            return [f"expect({locator_code}).to_be_hidden()"]
        return [f"expect({locator_code}).to_be_visible()"]
    if kind == "waitForExpression":
        return [f"page.wait_for_function({py_str(step.expression)})"]
    if kind == "customStep":
        return [f"# Custom step: {step.name}"]
    return [f"# Unsupported step type: {kind}"]


def assertion_to_code(expectation: AssertionExpect) -> str:
    if expectation.type == "url_contains":
        return f"expect(page).to_have_url(re.compile(re.escape({py_str(expectation.value)})))"
    if expectation.type == "visible_text":
        return f"expect(page.get_by_text({py_str(expectation.value)}, exact=False).first).to_be_visible()"
    args = [py_str(expectation.role or "button")]
    if expectation.name:
        args.append(f"name={py_str(expectation.name)}")
    if expectation.exact is not None:
        args.append(f"exact={expectation.exact}")
    return f"expect(page.get_by_role({', '.join(args)})).to_be_visible()"


def render_recording(
    recording: Recording,
    source: str,
    overrides: Optional[OverridesFile] = None,
    assertions: Optional[AssertionsFile] = None,
) -> RenderedScript:
    """Build the replay script text for one recording."""
    slug = sanitize_filename(recording.title)
    override_code: Dict[Tuple[int, str], str] = {}
    if overrides:
        for entry in overrides.overrides:
            override_code[entry.key] = locator_to_code(entry.locator)

    assertion_map: Dict[int, List[AssertionExpect]] = {}
    if assertions:
        for entry in assertions.assertions:
            assertion_map.setdefault(entry.after_step, []).extend(entry.expect)

    brittle: List[SelectorReport] = []
    frames: List[SelectorReport] = []
    body: List[str] = []
    executable = False

    for index, raw_step in enumerate(recording.steps):
        step = parse_step(raw_step)
        locator_code = override_code.get((index, step.type))

        needs_locator = step.type in LOCATOR_STEP_TYPES or (step.type == "scroll" and step.selectors)
        if locator_code is None and needs_locator:
            scored = select_best_selector(step.selectors)
            locator_code = scored.code
            report = SelectorReport(recording.title, slug, index, step.type, scored)
            if scored.brittle:
                brittle.append(report)
            if scored.frame_depth > 1:
                frames.append(report)

        lines = step_to_code(step, locator_code)
        executable = executable or any(not line.startswith("#") for line in lines)
        body.append(f"# step {index}: {step.type}")
        body.extend(lines)
        body.append("")

        if index in assertion_map:
            body.append(f"# assert after step {index}")
            body.extend(assertion_to_code(e) for e in assertion_map[index])
            body.append("")
            executable = True

    while body and not body[-1]:
        body.pop()
    if not executable:
        body.append("pass")

    uses_re = any(e.type == "url_contains" for exps in assertion_map.values() for e in exps)
    header = [f"# DO NOT EDIT - generated by {GENERATOR_NAME} from {source}"]
    if uses_re:
        header.append("import re")
        header.append("")
    header.append("from playwright.sync_api import Page, expect")
    header.extend(["", ""])
    header.append(f"def {script_name(slug)}(page: Page) -> None:")
    header.append(f"{INDENT}{py_str(recording.title)}")

    lines = header + [f"{INDENT}{line}" if line else "" for line in body]
    return RenderedScript("\n".join(lines) + "\n", brittle, frames)


# ---------------------------------------------------------------------------
# Batch generation
# ---------------------------------------------------------------------------


class RecordingGenerator:
    """Batch converter from the recordings directory to the generated test directory."""

    def __init__(self, config: Optional[RecordingsConfig] = None, logger: Optional[logging.Logger] = None):
        self.config = config or RecordingsConfig()
        self.logger = logger or logging.getLogger("recorder.generate")

    def _load_sidecars(self, recording: Recording, slug: str) -> Tuple[Optional[OverridesFile], Optional[AssertionsFile]]:
        overrides = assertions = None
        overrides_path = find_sidecar(self.config.overrides_dir, slug)
        if overrides_path:
            overrides = load_overrides_file(overrides_path)
            validate_overrides_against_recording(overrides, recording)
        assertions_path = find_sidecar(self.config.assertions_dir, slug)
        if assertions_path:
            assertions = load_assertions_file(assertions_path)
            validate_assertions_against_recording(assertions, recording)
        return overrides, assertions

    def generate(self) -> GenerateResult:
        """
        Convert every recording; invalid ones are reported without stopping the batch.

        Raises:
            NoValidRecordingsError: files exist but none of them is a valid recording
            BrittleSelectorError: strict mode and a brittle selector has no override
        """
        result = GenerateResult()
        files = list_recording_files(self.config)
        if not files:
            self.logger.info(f"No recording JSON files found in {_display(self.config.recordings_dir)}")
            return result

        self.config.output_dir.mkdir(parents=True, exist_ok=True)

        for path in files:
            source = _display(path)
            try:
                recording = load_recording(path)
                slug = sanitize_filename(recording.title)
                overrides, assertions = self._load_sidecars(recording, slug)
            except (RecordingLoadError, RecordingValidationError) as exc:
                result.invalid_recordings.append(InvalidRecording(source, exc.message))
                self.logger.warning(f"Skipping {source}: {exc.message}")
                continue

            rendered = render_recording(recording, source, overrides, assertions)
            out_path = self.config.output_dir / f"{script_name(slug)}.py"
            out_path.write_text(rendered.source, encoding="utf-8")
            result.files_written.append(out_path)
            result.brittle_selectors.extend(rendered.brittle_selectors)
            result.frame_warnings.extend(rendered.frame_warnings)
            self.logger.info(f"Wrote {_display(out_path)}")

        if not result.files_written and result.invalid_recordings:
            count = len(result.invalid_recordings)
            noun = "file" if count == 1 else "files"
            lines = [
                f"No valid DevTools Recorder JSON files found in {_display(self.config.recordings_dir)}.",
                f"Rejected {count} {noun}:",
                *(f"- {r.file}: {r.reason}" for r in result.invalid_recordings),
                EXPORT_HINT,
            ]
            raise NoValidRecordingsError("\n".join(lines), [r.reason for r in result.invalid_recordings])

        for report in result.frame_warnings:
            self.logger.warning(
                f"{report.recording} step {report.step} ({report.type}): selector is nested "
                f"{report.selector.frame_depth} frames deep; only the top-level frame is used"
            )

        if result.brittle_selectors:
            self.logger.warning("Brittle selectors detected:")
            for report in result.brittle_selectors:
                self.logger.warning(f"  {report.describe()}")
                self.logger.warning(
                    f"    Fix: add override in {_display(self.config.overrides_dir / (report.slug + '.yaml'))}"
                )
            if self.config.strict_selectors:
                lines = [
                    f"Strict selector mode is enabled: {len(result.brittle_selectors)} brittle selector(s) "
                    "without an override:",
                    *(f"- {report.describe()}" for report in result.brittle_selectors),
                    "Add selector overrides for the steps listed above.",
                ]
                raise BrittleSelectorError("\n".join(lines), count=len(result.brittle_selectors))

        self.logger.info(f"Generated {len(result.files_written)} test file(s)")
        return result


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate pytest-playwright replay tests from DevTools Recorder JSON",
    )
    parser.add_argument("--recordings-dir", type=Path, help="Directory with recording JSON files")
    parser.add_argument("--output-dir", type=Path, help="Directory for generated test files")
    parser.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Fail when a brittle selector has no override (default: RECORDINGS_STRICT_SELECTORS=1 or CI)",
    )
    parser.add_argument("--config", type=Path, help="Config file (JSON or YAML)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else os.getenv("LOG_LEVEL", "INFO").upper(),
        format="[%(levelname)s] %(message)s",
    )
    logger = logging.getLogger(GENERATOR_NAME)

    try:
        config = load_config(
            args.config,
            cli_overrides={
                "recordings_dir": args.recordings_dir,
                "output_dir": args.output_dir,
                "strict": args.strict,
            },
        )
        RecordingGenerator(config.recordings, logger).generate()
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
