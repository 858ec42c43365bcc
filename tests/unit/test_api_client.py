"""
Unit tests for the provider-backed model router.

All provider SDKs and HTTP calls are mocked.
"""

import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ensemble.api_client import Provider, ProviderModelRouter, resolve_model
from ensemble.config import InferenceConfig
from ensemble.interfaces import AvailabilityOracle, ModelRouter
from ensemble.types import ConversationContext, Message, MessageRole, ModelUnavailableError


@pytest.fixture
def no_keys(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


def _ollama_tags(*names):
    response = MagicMock()
    response.json.return_value = {"models": [{"name": n} for n in names]}
    response.raise_for_status.return_value = None
    return response


class TestResolveModel:
    """Tests for model name resolution."""

    def test_registry_entries(self):
        assert resolve_model("mistral-7b") == (Provider.OLLAMA, "mistral:7b")
        assert resolve_model("haiku")[0] == Provider.ANTHROPIC
        assert resolve_model("gpt-4o") == (Provider.OPENAI, "gpt-4o")

    def test_guesses_by_prefix(self):
        assert resolve_model("claude-3-opus")[0] == Provider.ANTHROPIC
        assert resolve_model("gpt-5")[0] == Provider.OPENAI
        assert resolve_model("o3-mini")[0] == Provider.OPENAI

    def test_unknown_names_go_to_ollama(self):
        assert resolve_model("qwen3:0.6b") == (Provider.OLLAMA, "qwen3:0.6b")


class TestAvailability:
    """Tests for is_available."""

    def test_implements_protocols(self, no_keys):
        router = ProviderModelRouter()

        assert isinstance(router, ModelRouter)
        assert isinstance(router, AvailabilityOracle)

    def test_hosted_models_need_keys(self, no_keys):
        router = ProviderModelRouter()

        assert not router.is_available("opus")
        assert not router.is_available("gpt-4o")
        assert router.configured_providers == [Provider.OLLAMA]

    def test_hosted_models_with_keys(self, no_keys):
        router = ProviderModelRouter(anthropic_key="sk-ant", openai_key="sk-oai")

        assert router.is_available("sonnet")
        assert router.is_available("gpt-4o-mini")

    def test_ollama_tags(self, no_keys):
        router = ProviderModelRouter()
        with patch(
            "ensemble.api_client.httpx.get", return_value=_ollama_tags("phi:latest", "mistral:7b")
        ) as get:
            assert router.is_available("phi-2")
            assert router.is_available("mistral-7b")
            assert not router.is_available("command-r")

        # Tag list is fetched once
        get.assert_called_once()

    def test_ollama_unreachable(self, no_keys):
        router = ProviderModelRouter()
        with patch(
            "ensemble.api_client.httpx.get", side_effect=httpx.ConnectError("refused")
        ):
            assert not router.is_available("phi-2")

    def test_ollama_recovers_after_failed_fetch(self, no_keys):
        """A failed tag fetch is retried on the next check."""
        router = ProviderModelRouter()
        with patch(
            "ensemble.api_client.httpx.get",
            side_effect=[httpx.ConnectError("refused"), _ollama_tags("phi:latest")],
        ) as get:
            assert not router.is_available("phi-2")
            assert router.is_available("phi-2")

        assert get.call_count == 2

    def test_ollama_tags_expire(self, no_keys):
        """Models pulled after the last fetch show up once the tag list goes stale."""
        router = ProviderModelRouter(InferenceConfig(availability_ttl_seconds=30.0))
        with patch(
            "ensemble.api_client.httpx.get",
            side_effect=[_ollama_tags(), _ollama_tags("command-r:latest")],
        ) as get:
            assert not router.is_available("command-r")
            assert not router.is_available("command-r")
            router._ollama_fetched_at -= 31.0
            assert router.is_available("command-r")

        assert get.call_count == 2

    def test_refresh_availability(self, no_keys):
        router = ProviderModelRouter()
        with patch("ensemble.api_client.httpx.get", return_value=_ollama_tags()) as get:
            router.is_available("phi-2")
            router.refresh_availability()
            router.is_available("phi-2")

        assert get.call_count == 2


class TestRouteInference:
    """Tests for route_inference."""

    @pytest.mark.asyncio
    async def test_anthropic(self, no_keys):
        router = ProviderModelRouter(anthropic_key="sk-ant")
        message = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Hello!")],
            usage=SimpleNamespace(input_tokens=10, output_tokens=3),
            stop_reason="end_turn",
        )
        router._anthropic = MagicMock()
        router._anthropic.messages.create = AsyncMock(return_value=message)
        context = ConversationContext(
            messages=[Message(role=MessageRole.USER, content="earlier")]
        )

        result = await router.route_inference("haiku", "hi", context)

        assert result.content == "Hello!"
        assert result.confidence == 0.8
        assert result.metadata["provider"] == "anthropic"
        assert result.metadata["output_tokens"] == 3
        kwargs = router._anthropic.messages.create.call_args.kwargs
        assert kwargs["messages"] == [
            {"role": "user", "content": "earlier"},
            {"role": "user", "content": "hi"},
        ]

    @pytest.mark.asyncio
    async def test_anthropic_truncated(self, no_keys):
        router = ProviderModelRouter(anthropic_key="sk-ant")
        message = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="partial")],
            usage=SimpleNamespace(input_tokens=1, output_tokens=1024),
            stop_reason="max_tokens",
        )
        router._anthropic = MagicMock()
        router._anthropic.messages.create = AsyncMock(return_value=message)

        result = await router.route_inference("haiku", "hi", ConversationContext())

        assert result.confidence == 0.5

    @pytest.mark.asyncio
    async def test_openai(self, no_keys):
        router = ProviderModelRouter(openai_key="sk-oai")
        completion = SimpleNamespace(
            choices=[
                SimpleNamespace(message=SimpleNamespace(content="Hi"), finish_reason="stop")
            ],
            usage=SimpleNamespace(prompt_tokens=5, completion_tokens=1),
        )
        router._openai = MagicMock()
        router._openai.chat.completions.create = AsyncMock(return_value=completion)

        result = await router.route_inference("gpt-4o", "hello", ConversationContext())

        assert result.content == "Hi"
        assert result.metadata["provider"] == "openai"
        assert result.metadata["input_tokens"] == 5

    @pytest.mark.asyncio
    async def test_unconfigured_provider_raises(self, no_keys):
        router = ProviderModelRouter()

        with pytest.raises(ModelUnavailableError):
            await router.route_inference("opus", "hi", ConversationContext())

    @pytest.mark.asyncio
    async def test_ollama(self, no_keys):
        router = ProviderModelRouter(InferenceConfig(ollama_url="http://ollama:11434"))
        response = MagicMock()
        response.raise_for_status.return_value = None
        response.json.return_value = {
            "message": {"role": "assistant", "content": "local answer"},
            "done_reason": "length",
            "prompt_eval_count": 7,
            "eval_count": 1024,
        }
        client = MagicMock()
        client.post = AsyncMock(return_value=response)

        with patch("ensemble.api_client.httpx.AsyncClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = client
            result = await router.route_inference("mistral-7b", "hi", ConversationContext())

        assert result.content == "local answer"
        assert result.confidence == 0.5
        assert result.metadata["model_id"] == "mistral:7b"
        url = client.post.call_args.args[0]
        assert url == "http://ollama:11434/api/chat"
        assert client.post.call_args.kwargs["json"]["model"] == "mistral:7b"

    @pytest.mark.asyncio
    async def test_empty_content_is_no_result(self, no_keys):
        router = ProviderModelRouter()
        response = MagicMock()
        response.raise_for_status.return_value = None
        response.json.return_value = {"message": {"content": ""}, "done_reason": "stop"}
        client = MagicMock()
        client.post = AsyncMock(return_value=response)

        with patch("ensemble.api_client.httpx.AsyncClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = client
            result = await router.route_inference("phi-2", "hi", ConversationContext())

        assert result is None
