"""
Ensemble Orchestrator: multi-model inference with confidence escalation.

Runs several language models on one prompt concurrently, fuses their
answers, and retries with stronger ensembles until a confidence bar is met.

Includes:
- Strategy classification from prompt, context and workspace
- Availability- and memory-aware model selection
- Parallel inference with per-model timeouts
- Confidence-gated escalation
- Rolling per-model metrics and a fusion history log
"""

__version__ = "0.1.0"

# Core orchestration
from .orchestrator import (
    EnsembleOrchestrator,
    EventListener,
    OrchestratorEvent,
    OrchestratorStatus,
)

# Strategy and model selection
from .strategy_classifier import (
    ContextComplexity,
    EnsembleStrategy,
    PromptAnalysis,
    QueryComplexity,
    QueryType,
    StrategyClassifier,
    analyze_context,
    analyze_prompt,
)
from .model_selector import (
    FixedResourceOracle,
    ModelSelector,
    StaticAvailabilityOracle,
    SystemResourceOracle,
    escalate_strategy,
)

# Execution
from .inference_runner import ParallelInferenceRunner
from .escalation import ConfidenceEscalationLoop, EscalationState

# Collaborators
from .interfaces import AvailabilityOracle, FusionEngine, ModelRouter, ResourceOracle
from .fusion import FusionMode, QualityAnalyzer, WeightedFusionEngine
from .api_client import Provider, ProviderModelRouter, resolve_model

# Metrics and history
from .metrics import EnsembleMetrics, MetricsAggregator, ModelMetrics, SessionRegistry
from .fusion_history import FusionHistoryLogger, FusionRecord
from .progress import CancellationToken, CancelledException, PeriodicTask

# Configuration
from .config import EnsembleConfig, default_config

# Types and errors
from .types import (
    ConfidenceThresholdNotMetError,
    ConversationContext,
    EnsembleError,
    EnsembleMetadata,
    EnsembleResponse,
    EnsembleSession,
    FusedResponse,
    FusionError,
    Message,
    MessageRole,
    ModelResponse,
    ModelUnavailableError,
    OrchestrationError,
    RouterInferenceResult,
    StreamChunk,
    WorkspaceCategory,
)

__all__ = [
    # Core orchestration
    "EnsembleOrchestrator",
    "EventListener",
    "OrchestratorEvent",
    "OrchestratorStatus",
    # Strategy and model selection
    "ContextComplexity",
    "EnsembleStrategy",
    "PromptAnalysis",
    "QueryComplexity",
    "QueryType",
    "StrategyClassifier",
    "analyze_context",
    "analyze_prompt",
    "FixedResourceOracle",
    "ModelSelector",
    "StaticAvailabilityOracle",
    "SystemResourceOracle",
    "escalate_strategy",
    # Execution
    "ParallelInferenceRunner",
    "ConfidenceEscalationLoop",
    "EscalationState",
    # Collaborators
    "AvailabilityOracle",
    "FusionEngine",
    "ModelRouter",
    "ResourceOracle",
    "FusionMode",
    "QualityAnalyzer",
    "WeightedFusionEngine",
    "Provider",
    "ProviderModelRouter",
    "resolve_model",
    # Metrics and history
    "EnsembleMetrics",
    "MetricsAggregator",
    "ModelMetrics",
    "SessionRegistry",
    "FusionHistoryLogger",
    "FusionRecord",
    "CancellationToken",
    "CancelledException",
    "PeriodicTask",
    # Configuration
    "EnsembleConfig",
    "default_config",
    # Types and errors
    "ConfidenceThresholdNotMetError",
    "ConversationContext",
    "EnsembleError",
    "EnsembleMetadata",
    "EnsembleResponse",
    "EnsembleSession",
    "FusedResponse",
    "FusionError",
    "Message",
    "MessageRole",
    "ModelResponse",
    "ModelUnavailableError",
    "OrchestrationError",
    "RouterInferenceResult",
    "StreamChunk",
    "WorkspaceCategory",
]
