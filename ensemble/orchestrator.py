"""
Ensemble inference orchestration.

Turns one prompt into a single vetted answer:
classify -> select models -> run them in parallel -> fuse -> escalate
until the confidence bar is met or attempts run out -> record metrics.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import EnsembleConfig, default_config
from .escalation import ConfidenceEscalationLoop
from .fusion import checked_fusion
from .fusion_history import FusionHistoryLogger
from .inference_runner import ParallelInferenceRunner
from .interfaces import AvailabilityOracle, FusionEngine, ModelRouter, ResourceOracle
from .metrics import EnsembleMetrics, MetricsAggregator, SessionRegistry
from .model_selector import ModelSelector, StaticAvailabilityOracle, SystemResourceOracle
from .progress import CancellationToken, PeriodicTask
from .strategy_classifier import EnsembleStrategy, StrategyClassifier
from .types import (
    ConversationContext,
    EnsembleResponse,
    EnsembleSession,
    ModelResponse,
    OrchestrationError,
    StreamChunk,
    WorkspaceCategory,
)

logger = logging.getLogger(__name__)


class OrchestratorEvent(str, Enum):
    """Notifications published by the orchestrator."""

    SESSION_STARTED = "session_started"
    STRATEGY_SELECTED = "strategy_selected"
    MODELS_SELECTED = "models_selected"
    ESCALATION = "escalation"
    SESSION_COMPLETED = "session_completed"
    SESSION_FAILED = "session_failed"
    METRICS_REFRESHED = "metrics_refreshed"


EventListener = Callable[[OrchestratorEvent, dict[str, Any]], None]


@dataclass(frozen=True)
class OrchestratorStatus:
    """Immutable snapshot of orchestrator state."""

    is_active: bool
    active_sessions: tuple[str, ...]
    active_models: tuple[str, ...]
    current_strategy: EnsembleStrategy | None
    last_confidence: float | None
    metrics: EnsembleMetrics
    monitoring: bool


class EnsembleOrchestrator:
    """
    Coordinate an ensemble of models for one prompt at a time.

    All collaborators are passed in; nothing is looked up globally.
    Shared state (sessions, active models, metrics) is only mutated
    between awaits on the event loop that runs ``orchestrate``.
    """

    def __init__(
        self,
        router: ModelRouter,
        fusion_engine: FusionEngine,
        resource_oracle: ResourceOracle | None = None,
        availability_oracle: AvailabilityOracle | None = None,
        config: EnsembleConfig | None = None,
        history: FusionHistoryLogger | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            router: Executes inference for a named model
            fusion_engine: Merges model outputs into one answer
            resource_oracle: Free-memory source (psutil reading if None)
            availability_oracle: Model reachability (the router itself if it
                implements is_available, otherwise everything is available)
            config: Orchestrator configuration (uses default if None)
            history: Fusion history log (built from config if None)
        """
        self.config = config or default_config
        self.router = router
        self.fusion_engine = fusion_engine

        if availability_oracle is None:
            if isinstance(router, AvailabilityOracle):
                availability_oracle = router
            else:
                availability_oracle = StaticAvailabilityOracle()

        self.classifier = StrategyClassifier(self.config.classifier)
        self.selector = ModelSelector(
            availability=availability_oracle,
            resources=resource_oracle or SystemResourceOracle(),
            models=self.config.models,
            resource_config=self.config.resources,
        )
        self.runner = ParallelInferenceRunner(
            router, timeout_seconds=self.config.inference.timeout_seconds
        )
        self.escalation = ConfidenceEscalationLoop(
            self.selector,
            self.runner,
            fusion_engine,
            max_attempts=self.config.escalation.max_attempts,
            on_escalation=self._on_escalation,
        )
        self.history = history or FusionHistoryLogger(self.config.history)

        self._registry = SessionRegistry()
        self._metrics = MetricsAggregator(self.config.metrics.averaging)
        self._listeners: list[EventListener] = []
        self._active_models: list[str] = []
        self._current_strategy: EnsembleStrategy | None = None
        self._last_confidence: float | None = None
        self._monitor_token: CancellationToken | None = None
        self._monitor_task: asyncio.Task[int] | None = None

    # Events

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """
        Subscribe to orchestrator events.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: OrchestratorEvent, **payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                logger.warning(f"Event listener failed on {event.value}: {e}")

    def _on_escalation(
        self,
        session: EnsembleSession,
        attempt: int,
        strategy: EnsembleStrategy,
        models: list[str],
    ) -> None:
        self._current_strategy = strategy
        self._emit(
            OrchestratorEvent.ESCALATION,
            session_id=session.id,
            attempt=attempt,
            strategy=strategy,
            models=list(models),
        )

    # Orchestration

    async def orchestrate(
        self,
        prompt: str,
        context: ConversationContext | None = None,
        workspace_category: WorkspaceCategory = WorkspaceCategory.GENERAL,
        required_confidence: float | None = None,
    ) -> EnsembleResponse:
        """
        Produce one answer for a prompt using an ensemble of models.

        A confidence shortfall after all escalation attempts is reported
        through ``correction_attempts`` and ``confidence``, not raised.

        Args:
            prompt: User prompt
            context: Prior conversation (empty if None)
            workspace_category: Kind of workspace the prompt comes from
            required_confidence: Confidence bar in [0, 1]
                (config default if None)

        Raises:
            OrchestrationError: If no model can be selected
            FusionError: If the fusion engine fails
            ValueError: If required_confidence is outside [0, 1]
        """
        if required_confidence is None:
            required_confidence = self.config.escalation.default_required_confidence
        if not 0.0 <= required_confidence <= 1.0:
            raise ValueError(f"required_confidence must be in [0, 1], got {required_confidence}")

        if context is None:
            context = ConversationContext(workspace_category=workspace_category)

        session = EnsembleSession(
            id=str(uuid.uuid4()),
            prompt=prompt,
            context=context,
            workspace_category=workspace_category,
        )

        self._registry.begin(session)
        logger.info(f"[{session.id[:8]}] Starting ensemble orchestration")
        self._emit(OrchestratorEvent.SESSION_STARTED, session_id=session.id)

        try:
            response, model_responses = await self._run_session(session, required_confidence)
        except BaseException as e:
            logger.info(f"[{session.id[:8]}] Orchestration failed: {e!r}")
            self._emit(OrchestratorEvent.SESSION_FAILED, session_id=session.id, error=str(e))
            raise
        finally:
            self._registry.end(session.id)

        self._metrics.record_completion(session, response, model_responses)
        self._last_confidence = response.confidence
        self.history.record(response, model_responses)

        logger.info(
            f"[{session.id[:8]}] Completed with confidence {response.confidence:.3f} "
            f"after {response.correction_attempts} correction attempts"
        )
        self._emit(
            OrchestratorEvent.SESSION_COMPLETED,
            session_id=session.id,
            confidence=response.confidence,
            correction_attempts=response.correction_attempts,
        )
        return response

    async def _run_session(
        self,
        session: EnsembleSession,
        required_confidence: float,
    ) -> tuple[EnsembleResponse, list[ModelResponse]]:
        strategy = self.classifier.classify(
            session.prompt, session.context, session.workspace_category
        )
        self._current_strategy = strategy
        self._emit(OrchestratorEvent.STRATEGY_SELECTED, session_id=session.id, strategy=strategy)

        models = self.selector.select(strategy, session.prompt, session.workspace_category)
        self._active_models = list(models)
        self._emit(OrchestratorEvent.MODELS_SELECTED, session_id=session.id, models=list(models))

        if not models:
            raise OrchestrationError(
                f"no models selectable for strategy {strategy.value}", strategy=strategy
            )

        responses = await self.runner.run(models, session.prompt, session.context, session)
        fused = await checked_fusion(
            self.fusion_engine.fuse(responses, session.prompt, strategy), stage="fusion"
        )

        collected = list(responses)
        response = await self.escalation.calibrate(
            fused,
            required_confidence,
            session,
            strategy,
            model_count=len(models),
            collected=collected,
        )
        return response, collected

    async def orchestrate_stream(
        self,
        prompt: str,
        context: ConversationContext | None = None,
        workspace_category: WorkspaceCategory = WorkspaceCategory.GENERAL,
        required_confidence: float | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Orchestrate, then deliver the answer as word chunks.

        Progress is the fraction of the answer already emitted. The last
        chunk has ``is_final`` set, progress 1.0, and carries the response.
        """
        response = await self.orchestrate(
            prompt,
            context=context,
            workspace_category=workspace_category,
            required_confidence=required_confidence,
        )

        words = response.content.split()
        size = max(1, self.config.stream.chunk_words)

        if not words:
            yield StreamChunk(text="", progress=1.0, is_final=True, response=response)
            return

        for start in range(0, len(words), size):
            end = min(start + size, len(words))
            text = " ".join(words[start:end])
            if end < len(words):
                yield StreamChunk(text=text + " ", progress=end / len(words))
            else:
                yield StreamChunk(text=text, progress=1.0, is_final=True, response=response)

    # Introspection

    def get_status(self) -> OrchestratorStatus:
        """Snapshot of current state; safe to hold onto."""
        return OrchestratorStatus(
            is_active=self._registry.is_active,
            active_sessions=self._registry.session_ids,
            active_models=tuple(self._active_models),
            current_strategy=self._current_strategy,
            last_confidence=self._last_confidence,
            metrics=self._metrics.snapshot(),
            monitoring=self._monitor_task is not None and not self._monitor_task.done(),
        )

    # Background metrics refresh

    def start_monitoring(
        self,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> asyncio.Task[int]:
        """
        Start the periodic metrics refresh on the running event loop.

        Args:
            sleep: Replacement for the interval wait, so tests can drive ticks

        Returns:
            The background task (the existing one if already running)
        """
        if self._monitor_task is not None and not self._monitor_task.done():
            return self._monitor_task

        self._monitor_token = CancellationToken()
        task = PeriodicTask(
            self._refresh_metrics,
            self.config.metrics.refresh_interval_seconds,
            sleep=sleep,
            name="ensemble-metrics-refresh",
        )
        self._monitor_task = task.start(self._monitor_token)
        return self._monitor_task

    async def stop_monitoring(self) -> int:
        """
        Cancel the metrics refresh and wait for it to finish.

        Returns:
            Number of refreshes that ran
        """
        if self._monitor_task is None or self._monitor_token is None:
            return 0

        self._monitor_token.cancel()
        ticks = await self._monitor_task
        self._monitor_task = None
        self._monitor_token = None
        return ticks

    def _refresh_metrics(self) -> None:
        snapshot = self._metrics.snapshot()
        logger.info(
            f"Ensemble metrics: {snapshot.total_ensembles} ensembles, "
            f"avg confidence {snapshot.average_confidence:.3f}, "
            f"avg time {snapshot.average_inference_time:.2f}s"
        )
        self._emit(OrchestratorEvent.METRICS_REFRESHED, metrics=snapshot.to_dict())


__all__ = [
    "EnsembleOrchestrator",
    "EventListener",
    "OrchestratorEvent",
    "OrchestratorStatus",
]
