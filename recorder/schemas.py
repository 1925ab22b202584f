"""Pydantic models for DevTools Recorder exports and their override/assertion sidecars."""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from exceptions import OverrideValidationError, RecordingValidationError

SelectorAlternative = List[str]


# ---------------------------------------------------------------------------
# DevTools Recorder JSON
# ---------------------------------------------------------------------------


class BaseStep(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    timeout: Optional[float] = None
    assertedEvents: Optional[List[Any]] = None


class NavigateStep(BaseStep):
    type: Literal["navigate"]
    url: str


class ClickStep(BaseStep):
    type: Literal["click"]
    selectors: List[SelectorAlternative]
    offsetX: Optional[float] = None
    offsetY: Optional[float] = None
    button: Optional[Literal["primary", "secondary", "middle"]] = None
    duration: Optional[float] = None


class DoubleClickStep(BaseStep):
    type: Literal["doubleClick"]
    selectors: List[SelectorAlternative]
    offsetX: Optional[float] = None
    offsetY: Optional[float] = None


class ChangeStep(BaseStep):
    type: Literal["change"]
    selectors: List[SelectorAlternative]
    value: str


class KeyDownStep(BaseStep):
    type: Literal["keyDown"]
    key: str


class KeyUpStep(BaseStep):
    type: Literal["keyUp"]
    key: str


class ScrollStep(BaseStep):
    type: Literal["scroll"]
    x: Optional[float] = None
    y: Optional[float] = None
    selectors: Optional[List[SelectorAlternative]] = None


class HoverStep(BaseStep):
    type: Literal["hover"]
    selectors: List[SelectorAlternative]


class SetViewportStep(BaseStep):
    type: Literal["setViewport"]
    width: int
    height: int
    deviceScaleFactor: Optional[float] = None
    isMobile: Optional[bool] = None
    hasTouch: Optional[bool] = None
    isLandscape: Optional[bool] = None


class WaitForElementStep(BaseStep):
    type: Literal["waitForElement"]
    selectors: List[SelectorAlternative]
    operator: Optional[str] = None
    count: Optional[int] = None
    visible: Optional[bool] = None
    properties: Optional[Dict[str, Any]] = None
    attributes: Optional[Dict[str, Any]] = None


class WaitForExpressionStep(BaseStep):
    type: Literal["waitForExpression"]
    expression: str


class CustomStep(BaseStep):
    type: Literal["customStep"]
    name: str
    parameters: Optional[Dict[str, Any]] = None


RecorderStep = Annotated[
    Union[
        NavigateStep,
        ClickStep,
        DoubleClickStep,
        ChangeStep,
        KeyDownStep,
        KeyUpStep,
        ScrollStep,
        HoverStep,
        SetViewportStep,
        WaitForElementStep,
        WaitForExpressionStep,
        CustomStep,
    ],
    Field(discriminator="type"),
]

KNOWN_STEP_TYPES = frozenset(
    {
        "navigate",
        "click",
        "doubleClick",
        "change",
        "keyDown",
        "keyUp",
        "scroll",
        "hover",
        "setViewport",
        "waitForElement",
        "waitForExpression",
        "customStep",
    }
)

_step_adapter: TypeAdapter = TypeAdapter(RecorderStep)


def parse_step(raw: Dict[str, Any]) -> BaseStep:
    """Validate a raw step against its typed schema; unknown types stay generic."""
    if raw.get("type") in KNOWN_STEP_TYPES:
        return _step_adapter.validate_python(raw)
    return BaseStep.model_validate(raw)


class Recording(BaseModel):
    """Top-level DevTools Recorder export: a title and ordered raw steps."""

    model_config = ConfigDict(extra="allow")

    title: str
    steps: List[Dict[str, Any]]

    @field_validator("steps")
    @classmethod
    def steps_have_type(cls, steps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for index, step in enumerate(steps):
            if not isinstance(step.get("type"), str):
                raise ValueError(f"step {index} has no string 'type' field")
        return steps

    @property
    def step_types(self) -> List[str]:
        return [step["type"] for step in self.steps]


# ---------------------------------------------------------------------------
# Override sidecar
# ---------------------------------------------------------------------------


class LocatorOverride(BaseModel):
    """Element descriptor vocabulary shared by the scorer, overrides and generated code."""

    kind: Literal["role", "label", "text", "testid", "css"]
    role: Optional[str] = None
    name: Optional[str] = None
    exact: Optional[bool] = None
    selector: Optional[str] = None
    text: Optional[str] = None
    id: Optional[str] = None


class OverrideEntry(BaseModel):
    step: int
    action: str
    locator: LocatorOverride

    @property
    def key(self) -> tuple[int, str]:
        return self.step, self.action


class OverridesFile(BaseModel):
    overrides: List[OverrideEntry]


# ---------------------------------------------------------------------------
# Assertion sidecar
# ---------------------------------------------------------------------------


class AssertionExpect(BaseModel):
    type: Literal["url_contains", "visible_text", "role_visible"]
    value: str
    role: Optional[str] = None
    name: Optional[str] = None
    exact: Optional[bool] = None


class AssertionEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    after_step: int = Field(alias="afterStep")
    expect: List[AssertionExpect]


class AssertionsFile(BaseModel):
    assertions: List[AssertionEntry]


def dump_overrides(overrides: OverridesFile) -> Dict[str, Any]:
    """Plain-data form of an overrides file, omitting unset locator fields."""
    return overrides.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Reference validation
# ---------------------------------------------------------------------------


def override_reference_issues(overrides: OverridesFile, recording: Recording) -> List[str]:
    """Every override whose step is missing from, or typed differently in, the recording."""
    issues: List[str] = []
    total = len(recording.steps)
    for entry in overrides.overrides:
        if entry.step < 0 or entry.step >= total:
            issues.append(
                f"step {entry.step}:{entry.action} is out of range (recording has {total} steps)"
            )
            continue
        step_type = recording.steps[entry.step].get("type")
        if step_type != entry.action:
            issues.append(
                f'step {entry.step} action mismatch: override uses "{entry.action}" '
                f'but recording step type is "{step_type}"'
            )
    return issues


def validate_overrides_against_recording(overrides: OverridesFile, recording: Recording) -> None:
    """Raise OverrideValidationError if any override references a bad step."""
    issues = override_reference_issues(overrides, recording)
    if issues:
        raise OverrideValidationError(f"Override validation failed: {'; '.join(issues)}", issues)


def validate_assertions_against_recording(assertions: AssertionsFile, recording: Recording) -> None:
    """Raise RecordingValidationError if an assertion follows a step that does not exist."""
    total = len(recording.steps)
    issues = [
        f"assertion afterStep {entry.after_step} is out of range (recording has {total} steps)"
        for entry in assertions.assertions
        if entry.after_step < 0 or entry.after_step >= total
    ]
    if issues:
        raise RecordingValidationError(f"Assertion validation failed: {'; '.join(issues)}", issues)
