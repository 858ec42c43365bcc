"""
Pytest configuration and fixtures for ensemble orchestrator tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to path so we can import the ensemble package
sys.path.insert(0, str(Path(__file__).parent.parent))

from ensemble.config import EnsembleConfig
from ensemble.types import (
    ConversationContext,
    FusedResponse,
    Message,
    MessageRole,
    ModelResponse,
    RouterInferenceResult,
)


class FakeRouter:
    """
    Scripted model router.

    ``behaviour`` maps a model name to one of:
    - (content, confidence, delay_seconds)
    - an Exception instance, raised after no delay
    - None, meaning the model returns no result
    Unlisted models answer "<model> answer" with confidence 0.7 immediately.
    """

    def __init__(self, behaviour=None):
        self.behaviour = dict(behaviour or {})
        self.calls: list[str] = []

    async def route_inference(self, model, prompt, context):
        self.calls.append(model)
        spec = self.behaviour.get(model, (f"{model} answer", 0.7, 0.0))
        if spec is None:
            return None
        if isinstance(spec, Exception):
            raise spec
        content, confidence, delay = spec
        if delay:
            await asyncio.sleep(delay)
        return RouterInferenceResult(content=content, confidence=confidence, metadata={"fake": True})


class FakeFusionEngine:
    """
    Fusion engine returning scripted confidences.

    The first fuse() call uses ``initial``; every fuse_additional() call
    pops the next value from ``refusions`` (repeating the last one).
    """

    def __init__(self, initial=0.9, refusions=None):
        self.initial = initial
        self.refusions = list(refusions or [])
        self.fuse_calls: list[list[ModelResponse]] = []
        self.additional_calls: list[list[ModelResponse]] = []

    async def fuse(self, responses, prompt, strategy):
        self.fuse_calls.append(list(responses))
        return FusedResponse(
            content=" ".join(r.response for r in responses),
            confidence=self.initial,
            contributing_models=[r.model for r in responses],
            strategy=strategy,
        )

    async def fuse_additional(self, original, additional, strategy):
        self.additional_calls.append(list(additional))
        if len(self.refusions) > 1:
            confidence = self.refusions.pop(0)
        elif self.refusions:
            confidence = self.refusions[0]
        else:
            confidence = original.confidence
        return FusedResponse(
            content=original.content,
            confidence=confidence,
            contributing_models=list(original.contributing_models)
            + [r.model for r in additional],
            strategy=strategy,
        )


def make_response(model, confidence=0.8, inference_time=0.1, text=None):
    return ModelResponse(
        model=model,
        response=text if text is not None else f"{model} says hello",
        confidence=confidence,
        inference_time=inference_time,
    )


@pytest.fixture
def empty_context():
    """Context with no prior messages."""
    return ConversationContext()


@pytest.fixture
def long_context():
    """Context with enough messages to count as high complexity."""
    messages = [
        Message(
            role=MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT,
            content=f"message {i}",
        )
        for i in range(12)
    ]
    return ConversationContext(messages=messages)


@pytest.fixture
def fake_router():
    """Router where every model answers immediately."""
    return FakeRouter()


@pytest.fixture
def router_factory():
    """Build a FakeRouter with scripted behaviour."""
    return FakeRouter


@pytest.fixture
def fake_fusion():
    """Fusion engine that always reports 0.9 confidence."""
    return FakeFusionEngine()


@pytest.fixture
def fusion_factory():
    """Build a FakeFusionEngine with scripted confidences."""
    return FakeFusionEngine


@pytest.fixture
def response_factory():
    """Build ModelResponse records."""
    return make_response


@pytest.fixture
def test_config(tmp_path):
    """Default config with history written under tmp_path."""
    config = EnsembleConfig()
    config.history.log_path = str(tmp_path / "history.jsonl")
    return config


# Markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "hypothesis: property-based tests"
    )
    config.addinivalue_line(
        "markers", "slow: tests that take >1s"
    )
