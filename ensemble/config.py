"""
Configuration management for the ensemble orchestrator.

Every numeric policy (word thresholds, memory cutoffs, attempt limits,
timeouts) lives here rather than in control flow.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal


@dataclass
class ClassifierConfig:
    """Thresholds and keywords for strategy classification."""

    high_word_threshold: int = 100
    medium_word_threshold: int = 20
    high_context_messages: int = 10
    medium_context_messages: int = 3
    code_keywords: list[str] = field(default_factory=lambda: ["code", "{", "function"])
    research_keywords: list[str] = field(default_factory=lambda: ["research", "analyze"])
    # Keywords matched regardless of case; the rest must match exactly
    case_insensitive_keywords: list[str] = field(
        default_factory=lambda: ["code", "research", "analyze"]
    )


@dataclass
class ResourceConfig:
    """Memory budget cutoffs, in GB."""

    low_memory_gb: float = 8.0  # below: single model
    medium_memory_gb: float = 16.0  # below: two models


@dataclass
class ModelConfig:
    """
    Candidate tables keyed by strategy value.

    Strategy values: speed, balanced, reasoning, coding, research, creative.
    """

    strategy_models: dict[str, list[str]] = field(
        default_factory=lambda: {
            "speed": ["phi-2"],
            "balanced": ["mistral-7b", "llama-2-7b"],
            "reasoning": ["mistral-7b", "llama-2-7b", "command-r"],
            "coding": ["codellama-7b", "phi-2", "mistral-7b"],
            "research": ["command-r", "mistral-7b", "llama-2-7b"],
            "creative": ["llama-2-7b", "mistral-7b"],
        }
    )
    supplementary_models: dict[str, list[str]] = field(
        default_factory=lambda: {
            "balanced": ["command-r"],
            "reasoning": ["command-r"],
        }
    )


@dataclass
class InferenceConfig:
    """Per-model inference settings."""

    timeout_seconds: float | None = 60.0
    max_tokens: int = 1024
    temperature: float = 0.3
    # Confidence reported by the provider router, by stop reason
    complete_confidence: float = 0.8
    truncated_confidence: float = 0.5
    ollama_url: str = "http://localhost:11434"
    # Seconds a fetched Ollama tag list stays fresh
    availability_ttl_seconds: float = 30.0


@dataclass
class EscalationConfig:
    """Confidence escalation limits."""

    max_attempts: int = 3
    default_required_confidence: float = 0.85


@dataclass
class MetricsConfig:
    """Rolling metrics behaviour."""

    averaging: Literal["blend", "mean"] = "blend"
    refresh_interval_seconds: float = 30.0


@dataclass
class HistoryConfig:
    """Fusion history log."""

    enabled: bool = False
    log_path: str = "~/.ensemble/fusion_history.jsonl"
    max_size_mb: float = 50.0
    max_files: int = 5


@dataclass
class StreamConfig:
    """Streaming orchestration output."""

    chunk_words: int = 8


@dataclass
class EnsembleConfig:
    """Complete orchestrator configuration."""

    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    resources: ResourceConfig = field(default_factory=ResourceConfig)
    models: ModelConfig = field(default_factory=ModelConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    escalation: EscalationConfig = field(default_factory=EscalationConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "EnsembleConfig":
        """Load configuration from file."""
        if path is None:
            path = Path.home() / ".ensemble" / "config.json"

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        # Partial model tables extend the defaults instead of replacing them
        models = ModelConfig()
        models_data = data.get("models", {})
        models.strategy_models.update(models_data.get("strategy_models", {}))
        models.supplementary_models.update(models_data.get("supplementary_models", {}))

        return cls(
            classifier=ClassifierConfig(**data.get("classifier", {})),
            resources=ResourceConfig(**data.get("resources", {})),
            models=models,
            inference=InferenceConfig(**data.get("inference", {})),
            escalation=EscalationConfig(**data.get("escalation", {})),
            metrics=MetricsConfig(**data.get("metrics", {})),
            history=HistoryConfig(**data.get("history", {})),
            stream=StreamConfig(**data.get("stream", {})),
        )

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = Path.home() / ".ensemble" / "config.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(
                {
                    "classifier": self.classifier.__dict__,
                    "resources": self.resources.__dict__,
                    "models": self.models.__dict__,
                    "inference": self.inference.__dict__,
                    "escalation": self.escalation.__dict__,
                    "metrics": self.metrics.__dict__,
                    "history": self.history.__dict__,
                    "stream": self.stream.__dict__,
                },
                f,
                indent=2,
            )


# Default configuration instance
default_config = EnsembleConfig()
