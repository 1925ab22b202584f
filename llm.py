"""Model backends: OpenAI-compatible chat completion providers and a scripted stub."""
from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Tuple, runtime_checkable

import openai
from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from config.models import AgentConfig
from exceptions import LLMConnectionError, LLMError, LLMResponseError, ModelTimeoutError


@dataclass(frozen=True)
class ProviderPreset:
    base_url: str
    model: str
    requires_api_key: bool


PROVIDER_PRESETS = {
    "chutes": ProviderPreset(
        base_url="https://llm.chutes.ai/v1",
        model="unsloth/Llama-3.2-3B-Instruct",
        requires_api_key=True,
    ),
    "ollama": ProviderPreset(
        base_url="http://localhost:11434/v1",
        model="llama3.2:3b",
        requires_api_key=False,
    ),
}
DEFAULT_PROVIDER = "chutes"

STUB_EXHAUSTED_RESPONSE = json.dumps(
    {"thinking": "No more stub responses", "action": {"type": "fail", "reason": "Stub exhausted"}}
)


@runtime_checkable
class LLMProvider(Protocol):
    """Anything that turns a system + user prompt into raw model text."""

    name: str

    async def generate(self, system: str, user: str, temperature: Optional[float] = None) -> str:
        ...

    async def health_check(self) -> bool:
        ...

    async def list_models(self) -> List[str]:
        ...


class OpenAICompatibleProvider:
    """Chat-completion provider for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        config: AgentConfig,
        name: str = DEFAULT_PROVIDER,
        logger: Optional[logging.Logger] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        preset = PROVIDER_PRESETS.get(name, PROVIDER_PRESETS[DEFAULT_PROVIDER])
        self.name = name
        self.logger = logger or logging.getLogger("llm")
        self.model = config.model or preset.model
        self.base_url = config.base_url or preset.base_url
        self.temperature = config.temperature
        self.top_p = config.top_p
        self.timeout_seconds = config.timeout_seconds

        api_key = config.api_key
        if preset.requires_api_key and not api_key:
            self.logger.warning(
                f"No API key configured for provider '{name}' (set CHUTES_API_KEY); model calls may fail"
            )
        # The tick loop is the only retry policy, so the client never retries on its own.
        self.client = client or AsyncOpenAI(
            api_key=api_key or name,
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            max_retries=0,
        )

    async def generate(self, system: str, user: str, temperature: Optional[float] = None) -> str:
        """Send one chat completion request and return the first choice's content."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=self.temperature if temperature is None else temperature,
                top_p=self.top_p,
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as e:
            raise ModelTimeoutError(self.timeout_seconds) from e
        except openai.APIConnectionError as e:
            raise LLMConnectionError(f"Could not reach model backend: {e}", base_url=self.base_url) from e
        except Exception as e:
            raise LLMError(f"Model call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMResponseError("Empty response from model")
        return content

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        reraise=True,
    )
    async def _fetch_models(self) -> List[str]:
        page = await self.client.models.list()
        return [model.id for model in page.data]

    async def health_check(self) -> bool:
        """True when the backend answers the model listing endpoint."""
        try:
            await self._fetch_models()
        except Exception as exc:
            self.logger.debug(f"Health check against {self.base_url} failed: {exc}")
            return False
        return True

    async def list_models(self) -> List[str]:
        try:
            return await self._fetch_models()
        except Exception as exc:
            self.logger.debug(f"Listing models from {self.base_url} failed: {exc}")
            return []


class StubProvider:
    """Returns queued responses in order; used for tests and dry runs."""

    name = "stub"

    def __init__(self, responses: Iterable[str] = ()):
        self._responses = deque(responses)
        self.calls: List[Tuple[str, str]] = []

    def add_response(self, response: str) -> None:
        self._responses.append(response)

    def reset(self, responses: Iterable[str] = ()) -> None:
        self._responses = deque(responses)
        self.calls = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(self, system: str, user: str, temperature: Optional[float] = None) -> str:
        self.calls.append((system, user))
        if self._responses:
            return self._responses.popleft()
        return STUB_EXHAUSTED_RESPONSE

    async def health_check(self) -> bool:
        return True

    async def list_models(self) -> List[str]:
        return ["stub"]


def create_provider(config: AgentConfig, logger: Optional[logging.Logger] = None) -> LLMProvider:
    """
    Build the provider named by ``config.provider``.

    Unknown names fall back to the default provider with a warning rather
    than failing, so a typo in the environment still yields a usable agent.
    """
    log = logger or logging.getLogger("llm")
    name = config.provider
    if name == "stub":
        return StubProvider()
    if name not in PROVIDER_PRESETS:
        log.warning(f"Unknown LLM provider '{name}', falling back to '{DEFAULT_PROVIDER}'")
        name = DEFAULT_PROVIDER
    return OpenAICompatibleProvider(config, name=name, logger=log)
