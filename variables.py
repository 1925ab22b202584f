"""``${ENV.NAME}`` placeholder resolution for test-case text."""
from __future__ import annotations

import logging
import os
import re
from typing import Iterable, Mapping, Optional

VARIABLE_PATTERN = re.compile(r"\$\{ENV\.(\w+)\}")
MASK_TOKEN = "[MASKED]"


def interpolate_variables(
    text: str,
    variables: Optional[Mapping[str, str]] = None,
    logger: Optional[logging.Logger] = None,
) -> str:
    """
    Replace ``${ENV.NAME}`` placeholders.

    Test-case variables win over the process environment. Unresolved
    placeholders are left verbatim and a warning is logged.
    """
    variables = variables or {}
    log = logger or logging.getLogger("variables")

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        env_value = os.environ.get(name)
        if env_value is not None:
            return env_value
        log.warning(f"Unresolved variable ${{ENV.{name}}}; leaving placeholder in place")
        return match.group(0)

    return VARIABLE_PATTERN.sub(_replace, text)


def mask_secrets(text: str) -> str:
    """Replace every placeholder with a fixed mask token, for logs."""
    return VARIABLE_PATTERN.sub(MASK_TOKEN, text)


def redact_values(text: str, values: Iterable[str]) -> str:
    """Replace literal occurrences of resolved secret values with the mask token."""
    for value in sorted({v for v in values if v}, key=len, reverse=True):
        text = text.replace(value, MASK_TOKEN)
    return text


def has_placeholders(text: str) -> bool:
    return bool(VARIABLE_PATTERN.search(text))
