"""
Collaborator contracts for the orchestrator.

The orchestrator receives one implementation of each at construction
time; tests substitute fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .strategy_classifier import EnsembleStrategy
    from .types import (
        ConversationContext,
        FusedResponse,
        ModelResponse,
        RouterInferenceResult,
    )


@runtime_checkable
class ModelRouter(Protocol):
    """Executes inference for a named model."""

    async def route_inference(
        self,
        model: str,
        prompt: str,
        context: ConversationContext,
    ) -> RouterInferenceResult | None:
        """
        Run one inference call.

        May raise or return None; either way the model contributes
        nothing to the ensemble.
        """
        ...


@runtime_checkable
class FusionEngine(Protocol):
    """Merges raw model outputs into one candidate answer."""

    async def fuse(
        self,
        responses: list[ModelResponse],
        prompt: str,
        strategy: EnsembleStrategy,
    ) -> FusedResponse:
        """Fuse a set of responses. Must accept zero or one response."""
        ...

    async def fuse_additional(
        self,
        original: FusedResponse,
        additional: list[ModelResponse],
        strategy: EnsembleStrategy,
    ) -> FusedResponse:
        """Fold new responses into an existing fused result."""
        ...


@runtime_checkable
class ResourceOracle(Protocol):
    """Reports free memory. May be approximate or stale."""

    def available_memory_gb(self) -> float:
        """Available memory in GB."""
        ...


@runtime_checkable
class AvailabilityOracle(Protocol):
    """Reports whether a model can currently be called."""

    def is_available(self, model: str) -> bool:
        """True if the model can be routed to."""
        ...


__all__ = [
    "AvailabilityOracle",
    "FusionEngine",
    "ModelRouter",
    "ResourceOracle",
]
