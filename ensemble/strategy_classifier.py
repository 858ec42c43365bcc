"""
Strategy classification for ensemble orchestration.

Maps a prompt, its conversation context and the workspace category to one
of a fixed set of ensemble strategies. Heuristic only: it runs before any
model is called, so it must stay cheap.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from .config import ClassifierConfig
from .types import ConversationContext, WorkspaceCategory


class EnsembleStrategy(str, Enum):
    """Named policy selecting which and how many models answer a prompt."""

    SPEED_OPTIMIZED = "speed"
    BALANCED = "balanced"
    DEEP_REASONING = "reasoning"
    CODING_SPECIALIST = "coding"
    RESEARCH_COLLABORATIVE = "research"
    CREATIVE_COLLABORATIVE = "creative"


class QueryComplexity(str, Enum):
    """Complexity of the prompt itself."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ContextComplexity(str, Enum):
    """Complexity contributed by prior conversation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QueryType(str, Enum):
    """Coarse prompt category derived from keyword flags."""

    GENERAL = "general"
    CODING = "coding"
    RESEARCH = "research"


class PromptAnalysis(BaseModel):
    """
    Derived view of a prompt.

    Computed fresh per request and never stored.
    """

    word_count: int = Field(ge=0)
    has_code_keywords: bool = False
    has_research_keywords: bool = False
    complexity: QueryComplexity = QueryComplexity.LOW
    query_type: QueryType = QueryType.GENERAL
    estimated_tokens: int = Field(default=0, ge=0)
    context_importance: float = Field(default=1.0, ge=0.0, le=10.0)


def _contains_any(text: str, keywords: list[str], folded: set[str]) -> bool:
    text_lower = text.lower()
    for keyword in keywords:
        if keyword.lower() in folded:
            if keyword.lower() in text_lower:
                return True
        elif keyword in text:
            return True
    return False


def analyze_prompt(
    prompt: str,
    context: ConversationContext | None = None,
    config: ClassifierConfig | None = None,
) -> PromptAnalysis:
    """
    Analyze a prompt's complexity.

    More than ``high_word_threshold`` words, or any coding or research
    keyword, makes a prompt high complexity; more than
    ``medium_word_threshold`` words makes it medium.
    """
    config = config or ClassifierConfig()
    folded = {k.lower() for k in config.case_insensitive_keywords}

    word_count = len(prompt.split())
    has_code = _contains_any(prompt, config.code_keywords, folded)
    has_research = _contains_any(prompt, config.research_keywords, folded)

    if word_count > config.high_word_threshold or has_code or has_research:
        complexity = QueryComplexity.HIGH
    elif word_count > config.medium_word_threshold:
        complexity = QueryComplexity.MEDIUM
    else:
        complexity = QueryComplexity.LOW

    if has_code:
        query_type = QueryType.CODING
    elif has_research:
        query_type = QueryType.RESEARCH
    else:
        query_type = QueryType.GENERAL

    # One point per two prior messages, starting at 1, capped at 10
    message_count = len(context.messages) if context else 0
    context_importance = min(10.0, 1.0 + message_count // 2)

    return PromptAnalysis(
        word_count=word_count,
        has_code_keywords=has_code,
        has_research_keywords=has_research,
        complexity=complexity,
        query_type=query_type,
        estimated_tokens=word_count * 2,
        context_importance=context_importance,
    )


def analyze_context(
    context: ConversationContext | None,
    config: ClassifierConfig | None = None,
) -> ContextComplexity:
    """Classify conversation context by number of prior messages."""
    config = config or ClassifierConfig()
    count = len(context.messages) if context else 0

    if count > config.high_context_messages:
        return ContextComplexity.HIGH
    if count > config.medium_context_messages:
        return ContextComplexity.MEDIUM
    return ContextComplexity.LOW


class StrategyClassifier:
    """
    Choose an ensemble strategy for a prompt.

    Rules, first match wins:
    1. high prompt complexity in a code workspace -> coding specialist
    2. high prompt complexity in a research workspace -> research collaborative
    3. high context complexity -> deep reasoning
    4. low prompt and low context complexity -> speed optimized
    5. anything else -> balanced
    """

    def __init__(self, config: ClassifierConfig | None = None):
        self.config = config or ClassifierConfig()

    def classify(
        self,
        prompt: str,
        context: ConversationContext | None = None,
        workspace_category: WorkspaceCategory = WorkspaceCategory.GENERAL,
    ) -> EnsembleStrategy:
        """Return the strategy for a prompt. Total over its inputs."""
        analysis = analyze_prompt(prompt, context, self.config)
        context_complexity = analyze_context(context, self.config)
        return self.decide(analysis.complexity, workspace_category, context_complexity)

    @staticmethod
    def decide(
        prompt_complexity: QueryComplexity,
        workspace_category: WorkspaceCategory,
        context_complexity: ContextComplexity,
    ) -> EnsembleStrategy:
        """Apply the ordered decision table."""
        if prompt_complexity == QueryComplexity.HIGH:
            if workspace_category == WorkspaceCategory.CODE:
                return EnsembleStrategy.CODING_SPECIALIST
            if workspace_category == WorkspaceCategory.RESEARCH:
                return EnsembleStrategy.RESEARCH_COLLABORATIVE

        if context_complexity == ContextComplexity.HIGH:
            return EnsembleStrategy.DEEP_REASONING

        if (
            prompt_complexity == QueryComplexity.LOW
            and context_complexity == ContextComplexity.LOW
        ):
            return EnsembleStrategy.SPEED_OPTIMIZED

        return EnsembleStrategy.BALANCED


__all__ = [
    "ContextComplexity",
    "EnsembleStrategy",
    "PromptAnalysis",
    "QueryComplexity",
    "QueryType",
    "StrategyClassifier",
    "analyze_context",
    "analyze_prompt",
]
