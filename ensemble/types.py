"""
Shared type definitions for the ensemble orchestrator.

Conversation context, the records passed between orchestration stages,
and the error hierarchy.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .strategy_classifier import EnsembleStrategy


class MessageRole(str, Enum):
    """Role in conversation."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class WorkspaceCategory(str, Enum):
    """Kind of workspace a conversation belongs to."""

    GENERAL = "general"
    CODE = "code"
    CREATIVE = "creative"
    RESEARCH = "research"


@dataclass
class Message:
    """A single message in conversation history."""

    role: MessageRole
    content: str
    timestamp: float | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class ConversationContext:
    """
    Prior conversation for a prompt.

    Only the ordered message list takes part in strategy selection; the
    identifiers are carried through to the model router untouched.
    """

    messages: list[Message] = field(default_factory=list)
    workspace_category: WorkspaceCategory = WorkspaceCategory.GENERAL
    project_id: str | None = None
    thread_id: str | None = None

    def to_chat_messages(self) -> list[dict[str, str]]:
        """Convert non-system messages to provider chat format."""
        return [
            {"role": m.role.value, "content": m.content}
            for m in self.messages
            if m.role != MessageRole.SYSTEM
        ]


@dataclass(frozen=True)
class EnsembleSession:
    """Bookkeeping record for one in-flight orchestration call."""

    id: str
    prompt: str
    context: ConversationContext
    workspace_category: WorkspaceCategory
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed(self) -> float:
        """Seconds since the session was created."""
        return time.time() - self.start_time


@dataclass(frozen=True)
class RouterInferenceResult:
    """What a model router returns for a single inference call."""

    content: str
    confidence: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelResponse:
    """One model's raw output."""

    model: str
    response: str
    confidence: float
    inference_time: float
    timestamp: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FusedResponse:
    """Output of one fusion call."""

    content: str
    confidence: float
    contributing_models: list[str]
    strategy: EnsembleStrategy


@dataclass(frozen=True)
class EnsembleMetadata:
    """Session, strategy and model count attached to a final response."""

    session: EnsembleSession
    strategy: EnsembleStrategy
    model_count: int


@dataclass(frozen=True)
class EnsembleResponse:
    """Final, caller-visible result of an orchestration."""

    content: str
    confidence: float
    contributing_models: list[str]
    fusion_strategy: EnsembleStrategy
    total_inference_time: float
    correction_attempts: int
    metadata: EnsembleMetadata

    def meets(self, required_confidence: float) -> bool:
        """Whether the final confidence reached the requested bar."""
        return self.confidence >= required_confidence

    def raise_for_confidence(self, required_confidence: float) -> None:
        """
        Raise if the response fell short of a confidence bar.

        The orchestrator reports a shortfall as data; callers that prefer
        an exception can opt in here.

        Raises:
            ConfidenceThresholdNotMetError: If confidence < required_confidence
        """
        if not self.meets(required_confidence):
            raise ConfidenceThresholdNotMetError(self.confidence, required_confidence)


@dataclass(frozen=True)
class StreamChunk:
    """A chunk from a streaming orchestration."""

    text: str
    progress: float
    is_final: bool = False
    response: EnsembleResponse | None = None


# Ensemble Error Classes


class EnsembleError(Exception):
    """Base class for ensemble errors."""

    pass


class OrchestrationError(EnsembleError):
    """Orchestration could not produce any response."""

    def __init__(self, details: str, strategy: EnsembleStrategy | None = None):
        self.details = details
        self.strategy = strategy
        super().__init__(f"Ensemble orchestration failed: {details}")


class ModelUnavailableError(EnsembleError):
    """A named model cannot be reached."""

    def __init__(self, model: str, reason: str = ""):
        self.model = model
        self.reason = reason
        message = f"Model unavailable: {model}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class FusionError(EnsembleError):
    """The fusion collaborator could not combine its inputs."""

    def __init__(self, details: str):
        self.details = details
        super().__init__(f"Response fusion error: {details}")


class ConfidenceThresholdNotMetError(EnsembleError):
    """Final confidence stayed below the requested threshold."""

    def __init__(self, confidence: float, required: float):
        self.confidence = confidence
        self.required = required
        super().__init__(f"Confidence threshold not met: {confidence:.3f} < {required:.3f}")
