"""Typed locator descriptors, agent actions, and lenient parsing of model output."""
from __future__ import annotations

import json
import re
from typing import Annotated, Any, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from exceptions import ActionParseError
from variables import VARIABLE_PATTERN


# ---------------------------------------------------------------------------
# Locator descriptors
# ---------------------------------------------------------------------------


class RoleLocator(BaseModel):
    kind: Literal["role"]
    role: str
    name: str
    exact: Optional[bool] = None


class LabelLocator(BaseModel):
    kind: Literal["label"]
    text: str
    exact: Optional[bool] = None


class TestIdLocator(BaseModel):
    __test__ = False

    kind: Literal["testid"]
    id: str


class TextLocator(BaseModel):
    kind: Literal["text"]
    text: str
    exact: Optional[bool] = None


class CssLocator(BaseModel):
    kind: Literal["css"]
    selector: str


class ActiveLocator(BaseModel):
    kind: Literal["active"]


LocatorSpec = Annotated[
    Union[RoleLocator, LabelLocator, TestIdLocator, TextLocator, CssLocator, ActiveLocator],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ClickAction(BaseModel):
    type: Literal["click"]
    locator: LocatorSpec
    description: Optional[str] = None


class FillAction(BaseModel):
    type: Literal["fill"]
    locator: LocatorSpec
    text: str
    description: Optional[str] = None


class PressAction(BaseModel):
    type: Literal["press"]
    key: str
    locator: Optional[LocatorSpec] = None
    description: Optional[str] = None


class SelectAction(BaseModel):
    type: Literal["select"]
    locator: LocatorSpec
    value: str
    description: Optional[str] = None


class CheckAction(BaseModel):
    type: Literal["check"]
    locator: LocatorSpec
    checked: bool
    description: Optional[str] = None


class WaitAction(BaseModel):
    type: Literal["wait"]
    ms: int = Field(ge=100, le=10000)
    description: Optional[str] = None


class GotoAction(BaseModel):
    type: Literal["goto"]
    url: str
    description: Optional[str] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        # Placeholders are resolved at execution time; check the shape with a stand-in.
        stand_in = VARIABLE_PATTERN.sub(lambda m: "placeholder" if m.start() else "https://placeholder", v)
        parsed = urlparse(stand_in)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Invalid URL: {v!r}")
        return v


class AssertAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["assert"]
    assert_type: Literal["visible_text", "url_contains", "locator_visible"] = Field(alias="assertType")
    value: str
    locator: Optional[LocatorSpec] = None
    description: Optional[str] = None


class FailAction(BaseModel):
    type: Literal["fail"]
    reason: str


Action = Annotated[
    Union[
        ClickAction,
        FillAction,
        PressAction,
        SelectAction,
        CheckAction,
        WaitAction,
        GotoAction,
        AssertAction,
        FailAction,
    ],
    Field(discriminator="type"),
]

# Actions that carry a required locator and are checked for existence first.
LOCATOR_ACTIONS = {"click", "fill", "select", "check"}


class LLMResponse(BaseModel):
    """Envelope the model is asked to produce every tick."""

    thinking: Optional[str] = None
    action: Action


# ---------------------------------------------------------------------------
# Lenient JSON extraction
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_GREEDY_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _candidate_texts(text: str) -> List[str]:
    """Substrings worth trying as JSON, most specific first."""
    candidates: List[str] = []
    fenced = [m.group(1).strip() for m in _FENCE_RE.finditer(text)]
    candidates.extend(fenced)
    candidates.append(text.strip())
    for source in [*fenced, text]:
        match = _GREEDY_OBJECT_RE.search(source)
        if match:
            candidates.append(match.group(0))
    return candidates


def extract_json_payload(text: str) -> Any:
    """
    Best-effort extraction of a JSON value from free-form model output.

    Tries fenced code blocks, then the whole text, then the widest
    ``{...}`` span, and finally scans every ``{`` for the first object that
    decodes cleanly. Returns ``None`` when nothing parses.
    """
    if not text:
        return None

    for candidate in _candidate_texts(text):
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            value, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def summarize_validation_error(exc: ValidationError, limit: Optional[int] = None) -> str:
    """Render pydantic errors as ``path: message`` pairs."""
    parts = []
    for error in exc.errors()[:limit]:
        path = ".".join(str(p) for p in error.get("loc", ())) or "<root>"
        parts.append(f"{path}: {error.get('msg')}")
    return "; ".join(parts)


def parse_action(raw: str) -> LLMResponse:
    """Parse raw model output into a validated :class:`LLMResponse`."""
    payload = extract_json_payload(raw)
    if not isinstance(payload, dict):
        raise ActionParseError("No JSON object found in model response", raw_response=raw)

    if "action" not in payload and "type" in payload:
        payload = {"action": payload}

    try:
        return LLMResponse.model_validate(payload)
    except ValidationError as exc:
        raise ActionParseError(
            f"Invalid action: {summarize_validation_error(exc, limit=3)}",
            raw_response=raw,
        ) from exc


def action_to_dict(action: Any) -> dict[str, Any]:
    """JSON-safe representation of an action using its wire field names."""
    return action.model_dump(mode="json", by_alias=True, exclude_none=True)
