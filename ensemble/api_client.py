"""
Provider-backed model router.

Routes a named model to the provider that serves it:
- Anthropic (Claude Opus, Sonnet, Haiku)
- OpenAI (GPT-4o family)
- Ollama (local models such as phi-2, mistral-7b, llama-2-7b, codellama-7b, command-r)

The router doubles as the availability oracle: hosted models are available
when their API key is configured, local models when Ollama has pulled them.
"""

from __future__ import annotations

import logging
import os
import time
from enum import Enum
from pathlib import Path
from typing import Any

import anthropic
import httpx
import openai
from dotenv import load_dotenv

from .config import InferenceConfig
from .types import ConversationContext, ModelUnavailableError, RouterInferenceResult

logger = logging.getLogger(__name__)

# Auto-load .env from project root
_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


class Provider(Enum):
    """Model provider."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OLLAMA = "ollama"


# Model registry with provider info
MODEL_REGISTRY: dict[str, tuple[Provider, str]] = {
    # Local ensemble members, served by Ollama
    "phi-2": (Provider.OLLAMA, "phi"),
    "mistral-7b": (Provider.OLLAMA, "mistral:7b"),
    "llama-2-7b": (Provider.OLLAMA, "llama2:7b"),
    "codellama-7b": (Provider.OLLAMA, "codellama:7b"),
    "command-r": (Provider.OLLAMA, "command-r"),
    # Anthropic models
    "opus": (Provider.ANTHROPIC, "claude-opus-4-5-20251101"),
    "sonnet": (Provider.ANTHROPIC, "claude-sonnet-4-20250514"),
    "haiku": (Provider.ANTHROPIC, "claude-haiku-4-5-20251001"),
    # OpenAI models
    "gpt-4o": (Provider.OPENAI, "gpt-4o"),
    "gpt-4o-mini": (Provider.OPENAI, "gpt-4o-mini"),
}

# Stop reasons meaning the output was cut off
TRUNCATED_STOP_REASONS = frozenset({"max_tokens", "length"})


def resolve_model(model: str) -> tuple[Provider, str]:
    """Resolve model shorthand to (provider, full_model_id)."""
    if model in MODEL_REGISTRY:
        return MODEL_REGISTRY[model]
    # Guess provider from model name
    if model.startswith("claude"):
        return (Provider.ANTHROPIC, model)
    if model.startswith(("gpt-", "o1", "o3")):
        return (Provider.OPENAI, model)
    # Anything else is assumed to be a local Ollama tag
    return (Provider.OLLAMA, model)


class ProviderModelRouter:
    """
    Route inference calls to Anthropic, OpenAI or a local Ollama server.

    Implements the ModelRouter and AvailabilityOracle protocols.
    """

    def __init__(
        self,
        config: InferenceConfig | None = None,
        anthropic_key: str | None = None,
        openai_key: str | None = None,
    ):
        """
        Initialize router.

        Args:
            config: Inference settings (timeouts, sampling, confidence mapping)
            anthropic_key: Anthropic API key, defaults to ANTHROPIC_API_KEY
            openai_key: OpenAI API key, defaults to OPENAI_API_KEY
        """
        self.config = config or InferenceConfig()
        self._anthropic: anthropic.AsyncAnthropic | None = None
        self._openai: openai.AsyncOpenAI | None = None
        self._ollama_models: set[str] | None = None
        self._ollama_fetched_at = 0.0

        anthropic_key = anthropic_key or os.environ.get("ANTHROPIC_API_KEY")
        if anthropic_key:
            self._anthropic = anthropic.AsyncAnthropic(api_key=anthropic_key)

        openai_key = openai_key or os.environ.get("OPENAI_API_KEY")
        if openai_key:
            self._openai = openai.AsyncOpenAI(api_key=openai_key)

    @property
    def configured_providers(self) -> list[Provider]:
        providers = [Provider.OLLAMA]
        if self._anthropic is not None:
            providers.append(Provider.ANTHROPIC)
        if self._openai is not None:
            providers.append(Provider.OPENAI)
        return providers

    def is_available(self, model: str) -> bool:
        """True if the model's provider is configured and serves the model."""
        provider, model_id = resolve_model(model)

        if provider == Provider.ANTHROPIC:
            return self._anthropic is not None
        if provider == Provider.OPENAI:
            return self._openai is not None

        pulled = self._list_ollama_models()
        return model_id in pulled or f"{model_id}:latest" in pulled

    def _list_ollama_models(self) -> set[str]:
        """
        Pulled Ollama tags.

        A successful fetch is reused for ``availability_ttl_seconds``; a
        failed fetch is not cached, so the next check asks Ollama again.
        """
        now = time.monotonic()
        if (
            self._ollama_models is not None
            and now - self._ollama_fetched_at < self.config.availability_ttl_seconds
        ):
            return self._ollama_models

        try:
            response = httpx.get(f"{self.config.ollama_url}/api/tags", timeout=1.0)
            response.raise_for_status()
            models = {m["name"] for m in response.json().get("models", [])}
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.debug(f"Ollama not reachable at {self.config.ollama_url}: {e}")
            self._ollama_models = None
            return set()

        self._ollama_models = models
        self._ollama_fetched_at = now
        return models

    def refresh_availability(self) -> None:
        """Forget the cached Ollama tag list."""
        self._ollama_models = None

    def _confidence_for(self, stop_reason: str | None) -> float:
        if stop_reason in TRUNCATED_STOP_REASONS:
            return self.config.truncated_confidence
        return self.config.complete_confidence

    async def route_inference(
        self,
        model: str,
        prompt: str,
        context: ConversationContext,
    ) -> RouterInferenceResult | None:
        """
        Run one inference call on the provider serving ``model``.

        Raises:
            ModelUnavailableError: If the model's provider is not configured
        """
        provider, model_id = resolve_model(model)
        messages = context.to_chat_messages()
        messages.append({"role": "user", "content": prompt})

        if provider == Provider.ANTHROPIC:
            content, stop_reason, usage = await self._complete_anthropic(model, model_id, messages)
        elif provider == Provider.OPENAI:
            content, stop_reason, usage = await self._complete_openai(model, model_id, messages)
        else:
            content, stop_reason, usage = await self._complete_ollama(model_id, messages)

        if not content:
            return None

        return RouterInferenceResult(
            content=content,
            confidence=self._confidence_for(stop_reason),
            metadata={
                "provider": provider.value,
                "model_id": model_id,
                "stop_reason": stop_reason,
                **usage,
            },
        )

    async def _complete_anthropic(
        self,
        model: str,
        model_id: str,
        messages: list[dict[str, str]],
    ) -> tuple[str, str | None, dict[str, Any]]:
        if self._anthropic is None:
            raise ModelUnavailableError(model, "ANTHROPIC_API_KEY not set")

        response = await self._anthropic.messages.create(
            model=model_id,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            messages=messages,
            timeout=self.config.timeout_seconds,
        )

        content = ""
        for block in response.content:
            if block.type == "text":
                content += block.text

        usage = {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        }
        return content, response.stop_reason, usage

    async def _complete_openai(
        self,
        model: str,
        model_id: str,
        messages: list[dict[str, str]],
    ) -> tuple[str, str | None, dict[str, Any]]:
        if self._openai is None:
            raise ModelUnavailableError(model, "OPENAI_API_KEY not set")

        response = await self._openai.chat.completions.create(
            model=model_id,
            messages=messages,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            timeout=self.config.timeout_seconds,
        )

        content = response.choices[0].message.content or ""
        usage = {
            "input_tokens": response.usage.prompt_tokens if response.usage else 0,
            "output_tokens": response.usage.completion_tokens if response.usage else 0,
        }
        return content, response.choices[0].finish_reason, usage

    async def _complete_ollama(
        self,
        model_id: str,
        messages: list[dict[str, str]],
    ) -> tuple[str, str | None, dict[str, Any]]:
        payload = {
            "model": model_id,
            "messages": messages,
            "stream": False,
            "options": {
                "num_predict": self.config.max_tokens,
                "temperature": self.config.temperature,
            },
        }

        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.config.ollama_url}/api/chat",
                json=payload,
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()

        content = data.get("message", {}).get("content", "")
        usage = {
            "input_tokens": data.get("prompt_eval_count", 0),
            "output_tokens": data.get("eval_count", 0),
        }
        return content, data.get("done_reason"), usage


__all__ = [
    "MODEL_REGISTRY",
    "Provider",
    "ProviderModelRouter",
    "TRUNCATED_STOP_REASONS",
    "resolve_model",
]
