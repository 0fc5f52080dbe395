# =============================================================================
# LLM Backends — Completions for Evaluator Judgments
# =============================================================================
#
# A judge call is one chat completion: the evaluator's system prompt, the
# pitch as a single user message, one JSON object back. Which API answers
# is a deployment choice, named by a provider id:
#
#   "anthropic/claude-sonnet-4-6"
#   "openai_compatible/deepseek-chat@https://api.deepseek.com/v1"
#    └─ kind ─────────┘ └─ model ─────┘ └─ base_url (optional) ──────┘
#
#   parse_provider_id()        str          → ProviderSpec
#   build_provider()           ProviderSpec → AnthropicProvider | OpenAICompatibleProvider
#   get_llm_provider()         configured backend, built once per process
#   create_provider_from_id()  per-request backend override
#
# DESIGN DECISION: Callers depend on the LLMProvider Protocol only. The
# judge never imports an SDK, and tests hand it an AsyncMock.
#
# DESIGN DECISION: No retry loop here. Both SDKs retry transient errors
# themselves; whatever still fails becomes that evaluator's judge_error.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, NamedTuple, Protocol

from pitchswarm.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    content: str
    model: str
    input_tokens: int
    output_tokens: int


class LLMProvider(Protocol):
    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_output: bool = False,
    ) -> LLMResponse:
        """
        One chat completion.

        `messages` holds user/assistant turns only; the system prompt is
        passed separately because the two APIs place it differently.
        `json_output` requests a JSON-object response where the API has a
        mode for it.
        """
        ...


class ProviderSpec(NamedTuple):
    kind: str
    model: str
    base_url: str | None = None


def _require_key(explicit: str | None, fallback: str, env_hint: str) -> str:
    key = explicit or settings.llm_api_key or fallback
    if not key:
        raise ValueError(f"No API key configured. Set LLM_API_KEY or {env_hint} in .env")
    return key


def _sampling(temperature: float | None, max_tokens: int | None) -> dict[str, Any]:
    return {
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "max_tokens": max_tokens or settings.llm_max_tokens,
    }


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Claude via AsyncAnthropic. The Messages API has no JSON mode, so
    `json_output` is carried by the prompt and the judge strips any code
    fence the model wraps around its answer.
    """

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        from anthropic import AsyncAnthropic

        self._client = AsyncAnthropic(
            api_key=_require_key(api_key, settings.anthropic_api_key, "ANTHROPIC_API_KEY"),
        )
        self._model = model or settings.llm_model
        logger.info("Anthropic judge backend ready (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_output: bool = False,
    ) -> LLMResponse:
        request: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            **_sampling(temperature, max_tokens),
        }
        if system:
            request["system"] = system

        message = await self._client.messages.create(**request)
        text = next((b.text for b in message.content if b.type == "text"), "")
        return LLMResponse(
            content=text,
            model=message.model,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# OpenAI-compatible (OpenAI, DeepSeek, Qwen, GLM, ...)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        key = _require_key(api_key, settings.openai_api_key, "OPENAI_API_KEY")
        self._base_url = base_url or settings.llm_base_url
        self._client = (
            AsyncOpenAI(api_key=key, base_url=self._base_url)
            if self._base_url else AsyncOpenAI(api_key=key)
        )
        self._model = model or settings.llm_model
        logger.info(
            "OpenAI-compatible judge backend ready (model=%s, base_url=%s)",
            self._model, self._base_url or "default",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_output: bool = False,
    ) -> LLMResponse:
        chat = [{"role": "system", "content": system}] if system else []
        request: dict[str, Any] = {
            "model": self._model,
            "messages": chat + list(messages),
            **_sampling(temperature, max_tokens),
        }
        if json_output:
            request["response_format"] = {"type": "json_object"}

        completion = await self._client.chat.completions.create(**request)
        usage = completion.usage
        return LLMResponse(
            content=completion.choices[0].message.content or "",
            model=completion.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

Provider = AnthropicProvider | OpenAICompatibleProvider

_KINDS = ("anthropic", "openai_compatible")


def parse_provider_id(provider_id: str) -> ProviderSpec:
    """
    Split "kind/model[@base_url]".

    Raises:
        ValueError: no "/", an unknown kind, or an empty model.
    """
    kind, sep, rest = provider_id.partition("/")
    if not sep:
        raise ValueError(
            f"Invalid provider_id '{provider_id}'. "
            "Expected 'kind/model' or 'kind/model@base_url'"
        )
    if kind not in _KINDS:
        raise ValueError(f"Unknown provider type '{kind}'. Supported types: {list(_KINDS)}")

    model, _, base_url = rest.partition("@")
    if not model:
        raise ValueError(f"Missing model in provider_id '{provider_id}'")
    return ProviderSpec(kind, model, base_url or None)


def build_provider(spec: ProviderSpec, api_key: str | None = None) -> Provider:
    """Backend for `spec`. API keys come from server configuration."""
    if spec.kind == "anthropic":
        return AnthropicProvider(api_key=api_key, model=spec.model)
    return OpenAICompatibleProvider(api_key=api_key, model=spec.model, base_url=spec.base_url)


def create_provider_from_id(provider_id: str, api_key: str | None = None) -> Provider:
    return build_provider(parse_provider_id(provider_id), api_key)


_provider: Provider | None = None


def get_llm_provider() -> Provider:
    """
    The configured backend (LLM_PROVIDER, LLM_MODEL, LLM_BASE_URL), built on
    first use. SDK clients pool their connections, so every evaluator of
    every run shares this one instance.
    """
    global _provider
    if _provider is None:
        _provider = build_provider(
            ProviderSpec(settings.llm_provider, settings.llm_model, settings.llm_base_url),
        )
    return _provider
