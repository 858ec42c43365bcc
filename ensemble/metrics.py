"""
Session tracking and rolling performance metrics.

The registry holds in-flight sessions so the orchestrator can report
whether an ensemble is active; the aggregator keeps process-lifetime
averages per model and overall.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from .types import EnsembleResponse, EnsembleSession, ModelResponse

logger = logging.getLogger(__name__)


def _update_average(
    current: float,
    sample: float,
    count_before: int,
    averaging: Literal["blend", "mean"],
) -> float:
    """
    Fold a sample into a running average.

    "blend" weighs the new sample equally with everything before it;
    "mean" is the true incremental mean. Both start at the first sample.
    """
    if count_before == 0:
        return sample
    if averaging == "mean":
        return current + (sample - current) / (count_before + 1)
    return (current + sample) / 2.0


@dataclass
class ModelMetrics:
    """Running totals for one model."""

    total_inferences: int = 0
    average_confidence: float = 0.0
    average_inference_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_inferences": self.total_inferences,
            "average_confidence": round(self.average_confidence, 4),
            "average_inference_time": round(self.average_inference_time, 4),
        }


@dataclass
class EnsembleMetrics:
    """Running totals across all orchestrations."""

    total_ensembles: int = 0
    average_confidence: float = 0.0
    average_inference_time: float = 0.0
    total_correction_attempts: int = 0
    model_metrics: dict[str, ModelMetrics] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_ensembles": self.total_ensembles,
            "average_confidence": round(self.average_confidence, 4),
            "average_inference_time": round(self.average_inference_time, 4),
            "total_correction_attempts": self.total_correction_attempts,
            "model_metrics": {name: m.to_dict() for name, m in self.model_metrics.items()},
        }


class MetricsAggregator:
    """
    Update rolling metrics after each completed orchestration.

    Per-model entries are created on first sight and never removed.
    """

    def __init__(self, averaging: Literal["blend", "mean"] = "blend"):
        self.averaging = averaging
        self._metrics = EnsembleMetrics()

    @property
    def metrics(self) -> EnsembleMetrics:
        """Live metrics object. Use snapshot() for a stable copy."""
        return self._metrics

    def snapshot(self) -> EnsembleMetrics:
        """Deep copy of the current metrics."""
        return copy.deepcopy(self._metrics)

    def record_completion(
        self,
        session: EnsembleSession,
        response: EnsembleResponse,
        model_responses: list[ModelResponse],
    ) -> None:
        """Fold one finished orchestration into the aggregate."""
        m = self._metrics
        count = m.total_ensembles

        m.average_confidence = _update_average(
            m.average_confidence, response.confidence, count, self.averaging
        )
        m.average_inference_time = _update_average(
            m.average_inference_time, response.total_inference_time, count, self.averaging
        )
        m.total_ensembles += 1
        m.total_correction_attempts += response.correction_attempts

        for model_response in model_responses:
            per_model = m.model_metrics.setdefault(model_response.model, ModelMetrics())
            seen = per_model.total_inferences
            per_model.average_confidence = _update_average(
                per_model.average_confidence, model_response.confidence, seen, self.averaging
            )
            per_model.average_inference_time = _update_average(
                per_model.average_inference_time,
                model_response.inference_time,
                seen,
                self.averaging,
            )
            per_model.total_inferences += 1

        logger.debug(
            f"[{session.id[:8]}] Metrics updated: {m.total_ensembles} ensembles, "
            f"avg confidence {m.average_confidence:.3f}"
        )


class SessionRegistry:
    """
    In-flight orchestration sessions.

    Invariant: a session id is registered exactly while its orchestration
    runs, and ``is_active`` is true iff the registry is non-empty.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, EnsembleSession] = {}
        self._active = False

    def begin(self, session: EnsembleSession) -> None:
        """Register a session at the start of an orchestration."""
        if session.id in self._sessions:
            raise ValueError(f"Session already active: {session.id}")
        self._sessions[session.id] = session
        self._active = True

    def end(self, session_id: str) -> None:
        """Remove a session. Safe to call for an unknown id."""
        self._sessions.pop(session_id, None)
        if not self._sessions:
            self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def get(self, session_id: str) -> EnsembleSession | None:
        return self._sessions.get(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def session_ids(self) -> tuple[str, ...]:
        return tuple(self._sessions)


__all__ = [
    "EnsembleMetrics",
    "MetricsAggregator",
    "ModelMetrics",
    "SessionRegistry",
]
