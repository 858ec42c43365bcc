"""
Response fusion for ensemble orchestration.

Provides the default fusion collaborator. Each response is scored for
content quality, model reliability, relevance to the prompt and coherence;
the ensemble's consensus, quality spread and diversity then pick one of
five fusion modes.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .strategy_classifier import EnsembleStrategy
from .types import FusedResponse, FusionError, ModelResponse

logger = logging.getLogger(__name__)

# Pseudo-model name for a prior fused result re-entering fusion
FUSED_MODEL_NAME = "fused-ensemble"

MAX_FUSED_CONFIDENCE = 0.99


class FusionMode(Enum):
    """How a set of responses is combined."""

    INTELLIGENT_WEIGHTING = "intelligent_weighting"
    CONSENSUS_BASED = "consensus_based"
    QUALITY_AVERAGING = "quality_averaging"
    SELECTIVE_BEST = "selective_best"
    HIERARCHICAL_MERGING = "hierarchical_merging"


# Fallback mode per ensemble strategy when the responses give no clear signal
PREFERRED_MODES: dict[EnsembleStrategy, FusionMode] = {
    EnsembleStrategy.SPEED_OPTIMIZED: FusionMode.SELECTIVE_BEST,
    EnsembleStrategy.BALANCED: FusionMode.INTELLIGENT_WEIGHTING,
    EnsembleStrategy.DEEP_REASONING: FusionMode.HIERARCHICAL_MERGING,
    EnsembleStrategy.CODING_SPECIALIST: FusionMode.CONSENSUS_BASED,
    EnsembleStrategy.RESEARCH_COLLABORATIVE: FusionMode.QUALITY_AVERAGING,
    EnsembleStrategy.CREATIVE_COLLABORATIVE: FusionMode.INTELLIGENT_WEIGHTING,
}

# Base accuracy by model; unknown models get DEFAULT_RELIABILITY
MODEL_RELIABILITY: dict[str, float] = {
    "command-r": 0.95,
    "mistral-7b": 0.89,
    "codellama-7b": 0.85,
    "llama-2-7b": 0.82,
    "phi-2": 0.80,
}
DEFAULT_RELIABILITY = 0.8

CONFIDENCE_INDICATORS = ("research shows", "studies indicate", "data suggests")
CONNECTORS = ("however", "therefore", "moreover", "furthermore", "additionally")


def _words(text: str) -> set[str]:
    return set(text.lower().split())


def text_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the two texts' word sets."""
    words_a, words_b = _words(a), _words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def calculate_consensus(responses: list[ModelResponse]) -> float:
    """Mean pairwise similarity; 0.5 when there is nothing to compare."""
    if len(responses) < 2:
        return 0.5

    total = 0.0
    comparisons = 0
    for i in range(len(responses)):
        for j in range(i + 1, len(responses)):
            total += text_similarity(responses[i].response, responses[j].response)
            comparisons += 1
    return total / comparisons


def calculate_diversity(responses: list[ModelResponse]) -> float:
    """Blend of vocabulary diversity and length spread, in [0, 1]."""
    if len(responses) < 2:
        return 0.0

    lengths = [len(r.response) for r in responses]
    avg_length = sum(lengths) / len(lengths)
    length_std = math.sqrt(sum((n - avg_length) ** 2 for n in lengths) / len(lengths))
    length_diversity = min(length_std / avg_length, 1.0) if avg_length > 0 else 0.0

    all_words = [w for r in responses for w in r.response.split()]
    word_diversity = len(set(all_words)) / max(len(all_words), 1)

    return (word_diversity + length_diversity) / 2.0


@dataclass
class ResponseAnalysis:
    """Quality scores for one response."""

    response: ModelResponse
    content_quality: float
    factual_accuracy: float
    relevance: float
    coherence: float
    reliability: float

    @property
    def overall_quality(self) -> float:
        return (
            self.content_quality * 0.25
            + self.factual_accuracy * 0.25
            + self.relevance * 0.25
            + self.coherence * 0.15
            + self.reliability * 0.10
        )


class QualityAnalyzer:
    """Cheap text heuristics for response quality."""

    def __init__(self, reliability: dict[str, float] | None = None):
        self.reliability = dict(MODEL_RELIABILITY)
        if reliability:
            self.reliability.update(reliability)

    def model_reliability(self, model: str) -> float:
        return self.reliability.get(model, DEFAULT_RELIABILITY)

    def content_quality(self, content: str, prompt: str) -> float:
        length_score = min(len(content) / 500.0, 1.0)
        structure_score = 0.8 if "\n" in content else 0.6
        keywords = [w.lower() for w in prompt.split() if len(w) > 3]
        content_lower = content.lower()
        present = [k for k in keywords if k in content_lower]
        keyword_score = len(present) / max(len(keywords), 1)
        return (length_score + structure_score + keyword_score) / 3.0

    def factual_accuracy(self, content: str, model: str) -> float:
        base = self.model_reliability(model)
        content_lower = content.lower()
        if any(indicator in content_lower for indicator in CONFIDENCE_INDICATORS):
            return min(base + 0.1, MAX_FUSED_CONFIDENCE)
        return base

    def relevance(self, content: str, prompt: str) -> float:
        prompt_words = _words(prompt)
        if not prompt_words:
            return 0.0
        return len(prompt_words & _words(content)) / len(prompt_words)

    def coherence(self, content: str) -> float:
        sentences = [s for s in content.split(". ") if s.strip()]
        if len(sentences) < 2:
            return 0.5
        content_lower = content.lower()
        return 0.8 if any(c in content_lower for c in CONNECTORS) else 0.6

    def analyze(self, response: ModelResponse, prompt: str) -> ResponseAnalysis:
        return ResponseAnalysis(
            response=response,
            content_quality=self.content_quality(response.response, prompt),
            factual_accuracy=self.factual_accuracy(response.response, response.model),
            relevance=self.relevance(response.response, prompt),
            coherence=self.coherence(response.response),
            reliability=self.model_reliability(response.model),
        )


class WeightedFusionEngine:
    """
    Default fusion collaborator.

    Tolerates zero responses (confidence 0.0, no contributors) and keeps
    every fused confidence within [0, 0.99].
    """

    CONSENSUS_THRESHOLD = 0.85
    QUALITY_SPREAD_THRESHOLD = 0.2
    DIVERSITY_THRESHOLD = 0.7

    def __init__(self, analyzer: QualityAnalyzer | None = None, history_size: int = 100):
        self.analyzer = analyzer or QualityAnalyzer()
        self._history: deque[dict[str, Any]] = deque(maxlen=history_size)

    async def fuse(
        self,
        responses: list[ModelResponse],
        prompt: str,
        strategy: EnsembleStrategy = EnsembleStrategy.BALANCED,
    ) -> FusedResponse:
        """Fuse a set of model responses into one answer."""
        if not responses:
            logger.warning("No responses to fuse")
            return FusedResponse(content="", confidence=0.0, contributing_models=[], strategy=strategy)

        analyses = sorted(
            (self.analyzer.analyze(r, prompt) for r in responses),
            key=lambda a: a.overall_quality,
            reverse=True,
        )
        mode = self.choose_mode(responses, analyses, strategy)
        content, confidence, contributors = self._execute(mode, analyses)

        # Small bonus for the quality of the fused text itself
        quality = self.analyzer.content_quality(content, prompt)
        confidence = min(max(confidence + quality * 0.1, 0.0), MAX_FUSED_CONFIDENCE)

        self._history.append(
            {
                "mode": mode.value,
                "strategy": strategy.value,
                "responses": len(responses),
                "confidence": confidence,
            }
        )
        logger.debug(f"Fused {len(responses)} responses with {mode.value}: {confidence:.3f}")

        return FusedResponse(
            content=content,
            confidence=confidence,
            contributing_models=contributors,
            strategy=strategy,
        )

    async def fuse_additional(
        self,
        original: FusedResponse,
        additional: list[ModelResponse],
        strategy: EnsembleStrategy,
    ) -> FusedResponse:
        """Re-fuse a prior fused result together with new responses."""
        if not additional:
            return FusedResponse(
                content=original.content,
                confidence=original.confidence,
                contributing_models=list(original.contributing_models),
                strategy=strategy,
            )

        prior = ModelResponse(
            model=FUSED_MODEL_NAME,
            response=original.content,
            confidence=original.confidence,
            inference_time=0.0,
            metadata={"fusion_type": "original"},
        )
        fused = await self.fuse([prior, *additional], prompt=original.content, strategy=strategy)

        contributors: list[str] = []
        for model in fused.contributing_models:
            names = original.contributing_models if model == FUSED_MODEL_NAME else [model]
            for name in names:
                if name not in contributors:
                    contributors.append(name)

        return FusedResponse(
            content=fused.content,
            confidence=fused.confidence,
            contributing_models=contributors,
            strategy=strategy,
        )

    def choose_mode(
        self,
        responses: list[ModelResponse],
        analyses: list[ResponseAnalysis],
        strategy: EnsembleStrategy,
    ) -> FusionMode:
        """Pick a fusion mode from consensus, quality spread and diversity."""
        if len(responses) == 1:
            return FusionMode.SELECTIVE_BEST

        qualities = [a.overall_quality for a in analyses]
        mean_quality = sum(qualities) / len(qualities)
        spread = math.sqrt(sum((q - mean_quality) ** 2 for q in qualities) / len(qualities))

        if calculate_consensus(responses) > self.CONSENSUS_THRESHOLD:
            return FusionMode.CONSENSUS_BASED
        if calculate_diversity(responses) > self.DIVERSITY_THRESHOLD:
            return FusionMode.SELECTIVE_BEST
        if spread < self.QUALITY_SPREAD_THRESHOLD and strategy == EnsembleStrategy.RESEARCH_COLLABORATIVE:
            return FusionMode.QUALITY_AVERAGING
        return PREFERRED_MODES.get(strategy, FusionMode.INTELLIGENT_WEIGHTING)

    def _execute(
        self, mode: FusionMode, analyses: list[ResponseAnalysis]
    ) -> tuple[str, float, list[str]]:
        best = analyses[0]
        all_models = [a.response.model for a in analyses]

        if mode == FusionMode.SELECTIVE_BEST:
            return best.response.response, best.response.confidence, [best.response.model]

        if mode == FusionMode.CONSENSUS_BASED:
            consensus = calculate_consensus([a.response for a in analyses])
            return best.response.response, consensus * 0.9 + 0.1, all_models

        if mode == FusionMode.QUALITY_AVERAGING:
            average = sum(a.response.confidence for a in analyses) / len(analyses)
            return best.response.response, min(average, 0.95), all_models

        if mode == FusionMode.HIERARCHICAL_MERGING:
            top = next((a for a in analyses if a.overall_quality >= 0.8), best)
            return top.response.response, top.response.confidence, all_models

        return self._weighted(analyses)

    def _weighted(self, analyses: list[ResponseAnalysis]) -> tuple[str, float, list[str]]:
        raw = [a.overall_quality + a.reliability * 0.2 + a.relevance * 0.3 for a in analyses]
        total = sum(raw) or 1.0
        weights = [w / total for w in raw]

        best = analyses[0]
        content = best.response.response
        weighted_confidence = 0.0

        for index, (analysis, weight) in enumerate(zip(analyses, weights)):
            weighted_confidence += analysis.response.confidence * weight
            if index == 0 or weight <= 0.2:
                continue
            insights = self._unique_insights(analysis.response.response, content)
            if insights:
                joined = ", ".join(insights)
                if weight > 0.5:
                    content = f"{content}\n\nAdditional insights: {joined}"
                else:
                    content = f"{content} (Note: {joined})"

        consensus = calculate_consensus([a.response for a in analyses])
        confidence = weighted_confidence + best.overall_quality * 0.1 + consensus * 0.1
        return content, confidence, [a.response.model for a in analyses]

    @staticmethod
    def _unique_insights(response: str, baseline: str, limit: int = 5) -> list[str]:
        baseline_words = set(baseline.split())
        insights: list[str] = []
        for word in response.split():
            if len(word) > 3 and word not in baseline_words and word not in insights:
                insights.append(word)
            if len(insights) >= limit:
                break
        return insights

    def get_statistics(self) -> dict[str, Any]:
        """Get fusion statistics over the recent history."""
        if not self._history:
            return {"total_fusions": 0}

        by_mode: dict[str, int] = {}
        for entry in self._history:
            by_mode[entry["mode"]] = by_mode.get(entry["mode"], 0) + 1

        return {
            "total_fusions": len(self._history),
            "by_mode": by_mode,
            "average_confidence": sum(e["confidence"] for e in self._history) / len(self._history),
        }


async def checked_fusion(call: Awaitable[FusedResponse], stage: str = "fusion") -> FusedResponse:
    """
    Await a fusion call and validate its result.

    Raises:
        FusionError: If the call raises or reports a confidence outside [0, 1]
    """
    try:
        fused = await call
    except FusionError:
        raise
    except Exception as e:
        logger.error(f"Fusion collaborator failed during {stage}: {e}")
        raise FusionError(f"{stage} failed: {e}") from e

    if fused is None:
        raise FusionError(f"{stage} returned no result")
    if not 0.0 <= fused.confidence <= 1.0:
        raise FusionError(f"{stage} returned confidence {fused.confidence} outside [0, 1]")
    return fused


__all__ = [
    "FUSED_MODEL_NAME",
    "FusionMode",
    "MODEL_RELIABILITY",
    "PREFERRED_MODES",
    "QualityAnalyzer",
    "ResponseAnalysis",
    "WeightedFusionEngine",
    "calculate_consensus",
    "calculate_diversity",
    "checked_fusion",
    "text_similarity",
]
