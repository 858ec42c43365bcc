"""
Parallel inference across an ensemble.

One task per model, all started at once. A model that raises, returns
nothing, or exceeds the per-model timeout is dropped; the rest of the
ensemble still completes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from .interfaces import ModelRouter
from .types import ConversationContext, EnsembleSession, ModelResponse

logger = logging.getLogger(__name__)


class ParallelInferenceRunner:
    """Fan a prompt out to several models and collect what comes back."""

    def __init__(
        self,
        router: ModelRouter,
        timeout_seconds: float | None = 60.0,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Initialize runner.

        Args:
            router: Collaborator that executes inference for a model
            timeout_seconds: Per-model limit; None waits indefinitely
            clock: Monotonic clock used to time each call
        """
        self.router = router
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    async def run(
        self,
        models: list[str],
        prompt: str,
        context: ConversationContext,
        session: EnsembleSession | None = None,
    ) -> list[ModelResponse]:
        """
        Run inference on every model concurrently.

        Returns:
            Responses that completed, ordered by ascending inference time
            (not by the order of ``models``)
        """
        if not models:
            return []

        session_tag = f"[{session.id[:8]}] " if session else ""
        logger.info(f"{session_tag}Executing parallel inference across {len(models)} models")

        results = await asyncio.gather(
            *(self._run_one(model, prompt, context, session_tag) for model in models)
        )

        responses = [r for r in results if r is not None]
        if len(responses) < len(models):
            logger.info(
                f"{session_tag}{len(responses)}/{len(models)} models contributed to the ensemble"
            )
        return sorted(responses, key=lambda r: r.inference_time)

    async def _run_one(
        self,
        model: str,
        prompt: str,
        context: ConversationContext,
        session_tag: str,
    ) -> ModelResponse | None:
        start = self.clock()
        try:
            result = await asyncio.wait_for(
                self.router.route_inference(model=model, prompt=prompt, context=context),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{session_tag}Model {model} timed out after {self.timeout_seconds}s")
            return None
        except Exception as e:
            logger.warning(f"{session_tag}Model {model} failed: {e}")
            return None

        inference_time = self.clock() - start

        if result is None:
            logger.warning(f"{session_tag}Model {model} returned no result")
            return None

        confidence = min(1.0, max(0.0, result.confidence))
        logger.debug(
            f"{session_tag}Model {model} completed in {inference_time:.3f}s "
            f"with confidence {confidence:.2f}"
        )

        return ModelResponse(
            model=model,
            response=result.content,
            confidence=confidence,
            inference_time=inference_time,
            timestamp=time.time(),
            metadata=dict(result.metadata),
        )


__all__ = ["ParallelInferenceRunner"]
