"""
Model selection for ensemble strategies.

Each strategy nominates a fixed, ordered candidate list. Candidates are
filtered by live availability and then trimmed to what the machine's
free memory can hold.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any

import psutil

from .config import ModelConfig, ResourceConfig
from .interfaces import AvailabilityOracle, ResourceOracle
from .strategy_classifier import EnsembleStrategy
from .types import WorkspaceCategory

logger = logging.getLogger(__name__)

# Strength order used when retrying with more effort
ESCALATION_ORDER: dict[EnsembleStrategy, EnsembleStrategy] = {
    EnsembleStrategy.SPEED_OPTIMIZED: EnsembleStrategy.BALANCED,
    EnsembleStrategy.BALANCED: EnsembleStrategy.DEEP_REASONING,
}


def escalate_strategy(strategy: EnsembleStrategy) -> EnsembleStrategy:
    """
    Return the next stronger strategy.

    Strategies without a stronger successor are returned unchanged.
    """
    return ESCALATION_ORDER.get(strategy, strategy)


class StaticAvailabilityOracle:
    """Treat every model as available except an explicit deny list."""

    def __init__(self, unavailable: set[str] | None = None):
        self.unavailable = set(unavailable or ())

    def is_available(self, model: str) -> bool:
        return model not in self.unavailable


class SystemResourceOracle:
    """Available system memory as reported by psutil."""

    def available_memory_gb(self) -> float:
        return psutil.virtual_memory().available / (1024**3)


class FixedResourceOracle:
    """A constant memory reading, for tests and pinned deployments."""

    def __init__(self, memory_gb: float):
        self.memory_gb = memory_gb

    def available_memory_gb(self) -> float:
        return self.memory_gb


class ModelSelector:
    """
    Resolve a strategy to the models that will actually run.

    Considers:
    - The strategy's candidate table
    - Which candidates are currently reachable
    - How much memory is free
    """

    def __init__(
        self,
        availability: AvailabilityOracle | None = None,
        resources: ResourceOracle | None = None,
        models: ModelConfig | None = None,
        resource_config: ResourceConfig | None = None,
        history_size: int = 100,
    ):
        """
        Initialize selector.

        Args:
            availability: Oracle for model reachability
            resources: Oracle for free memory
            models: Candidate and supplementary tables
            resource_config: Memory cutoffs
            history_size: Number of recent selections kept for statistics
        """
        self.availability = availability or StaticAvailabilityOracle()
        self.resources = resources or SystemResourceOracle()
        self.models = models or ModelConfig()
        self.resource_config = resource_config or ResourceConfig()
        self._selection_history: deque[dict[str, Any]] = deque(maxlen=history_size)

    def candidates(self, strategy: EnsembleStrategy) -> list[str]:
        """Nominal ordered candidate list for a strategy."""
        return list(self.models.strategy_models.get(strategy.value, []))

    def select(
        self,
        strategy: EnsembleStrategy,
        prompt: str = "",
        workspace_category: WorkspaceCategory = WorkspaceCategory.GENERAL,
    ) -> list[str]:
        """
        Select models for a strategy.

        An empty result is valid and yields an empty inference run.
        """
        candidates = self.candidates(strategy)
        available = self.filter_by_availability(candidates)
        selected = self.optimize_for_resources(available)

        self._selection_history.append(
            {
                "prompt": prompt[:100],
                "strategy": strategy.value,
                "workspace": workspace_category.value,
                "models": list(selected),
            }
        )

        logger.info(f"Selected models for {strategy.value}: {', '.join(selected) or 'none'}")
        return selected

    def select_supplementary(self, strategy: EnsembleStrategy) -> list[str]:
        """
        Extra models to add when escalating into a strategy.

        Not trimmed by the memory budget; the addendum is one or two models.
        """
        extra = list(self.models.supplementary_models.get(strategy.value, []))
        return self.filter_by_availability(extra)

    def filter_by_availability(self, models: list[str]) -> list[str]:
        """Drop unavailable models, preserving order."""
        available = [m for m in models if self.availability.is_available(m)]
        dropped = [m for m in models if m not in available]
        if dropped:
            logger.debug(f"Unavailable models dropped: {', '.join(dropped)}")
        return available

    def optimize_for_resources(self, models: list[str]) -> list[str]:
        """Trim the list to fit the memory budget."""
        memory_gb = self.resources.available_memory_gb()

        if memory_gb < self.resource_config.low_memory_gb:
            return models[:1]
        if memory_gb < self.resource_config.medium_memory_gb:
            return models[:2]
        return list(models)

    def get_statistics(self) -> dict[str, Any]:
        """Get selection statistics."""
        if not self._selection_history:
            return {"total_selections": 0}

        by_strategy: dict[str, int] = {}
        by_model: dict[str, int] = {}

        for entry in self._selection_history:
            strategy = entry["strategy"]
            by_strategy[strategy] = by_strategy.get(strategy, 0) + 1
            for model in entry["models"]:
                by_model[model] = by_model.get(model, 0) + 1

        return {
            "total_selections": len(self._selection_history),
            "by_strategy": by_strategy,
            "by_model": by_model,
        }


__all__ = [
    "ESCALATION_ORDER",
    "FixedResourceOracle",
    "ModelSelector",
    "StaticAvailabilityOracle",
    "SystemResourceOracle",
    "escalate_strategy",
]
