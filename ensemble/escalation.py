"""
Confidence-gated escalation.

While the fused answer is below the requested confidence and attempts
remain, escalate the strategy, query the strategy's supplementary models
and re-fuse. A shortfall after the last attempt is reported, not raised.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from .fusion import checked_fusion
from .inference_runner import ParallelInferenceRunner
from .interfaces import FusionEngine
from .model_selector import ModelSelector, escalate_strategy
from .strategy_classifier import EnsembleStrategy
from .types import EnsembleMetadata, EnsembleResponse, EnsembleSession, FusedResponse, ModelResponse

logger = logging.getLogger(__name__)


class EscalationState(Enum):
    """States of the escalation loop."""

    EVALUATE = "evaluate"
    ESCALATE = "escalate"
    DONE = "done"


class ConfidenceEscalationLoop:
    """
    Retry with more models until the confidence bar is met.

    Transitions:
    - EVALUATE -> DONE when confidence >= required or attempts exhausted
    - EVALUATE -> ESCALATE otherwise
    - ESCALATE -> DONE when the escalated strategy has no supplementary models
    - ESCALATE -> EVALUATE after re-running and re-fusing
    """

    def __init__(
        self,
        selector: ModelSelector,
        runner: ParallelInferenceRunner,
        fusion_engine: FusionEngine,
        max_attempts: int = 3,
        on_escalation: Callable[[EnsembleSession, int, EnsembleStrategy, list[str]], None]
        | None = None,
    ):
        self.selector = selector
        self.runner = runner
        self.fusion_engine = fusion_engine
        self.max_attempts = max_attempts
        self.on_escalation = on_escalation

    async def calibrate(
        self,
        fused: FusedResponse,
        required_confidence: float,
        session: EnsembleSession,
        strategy: EnsembleStrategy,
        model_count: int = 0,
        collected: list[ModelResponse] | None = None,
    ) -> EnsembleResponse:
        """
        Drive the loop from EVALUATE to DONE.

        Args:
            fused: Initial fused result
            required_confidence: Confidence bar in [0, 1]
            session: Session being orchestrated
            strategy: Strategy the initial ensemble ran with
            model_count: Number of models in the initial ensemble
            collected: If given, supplementary responses are appended here

        Raises:
            FusionError: If re-fusion fails
        """
        attempts = 0
        current_strategy = strategy
        state = EscalationState.EVALUATE

        while state != EscalationState.DONE:
            if state == EscalationState.EVALUATE:
                if fused.confidence >= required_confidence or attempts >= self.max_attempts:
                    state = EscalationState.DONE
                else:
                    state = EscalationState.ESCALATE
                continue

            attempts += 1
            logger.info(
                f"Confidence {fused.confidence:.3f} below threshold {required_confidence:.3f}, "
                f"attempt {attempts}"
            )

            current_strategy = escalate_strategy(current_strategy)
            additional_models = self.selector.select_supplementary(current_strategy)

            if self.on_escalation is not None:
                self.on_escalation(session, attempts, current_strategy, additional_models)

            if not additional_models:
                logger.info(f"No supplementary models for {current_strategy.value}, stopping")
                state = EscalationState.DONE
                continue

            additional = await self.runner.run(
                models=additional_models,
                prompt=session.prompt,
                context=session.context,
                session=session,
            )
            if collected is not None:
                collected.extend(additional)

            fused = await checked_fusion(
                self.fusion_engine.fuse_additional(
                    original=fused,
                    additional=additional,
                    strategy=current_strategy,
                ),
                stage="re-fusion",
            )
            state = EscalationState.EVALUATE

        return EnsembleResponse(
            content=fused.content,
            confidence=fused.confidence,
            contributing_models=list(fused.contributing_models),
            fusion_strategy=fused.strategy,
            total_inference_time=session.elapsed,
            correction_attempts=attempts,
            metadata=EnsembleMetadata(
                session=session,
                strategy=current_strategy,
                model_count=model_count,
            ),
        )


__all__ = ["ConfidenceEscalationLoop", "EscalationState"]
