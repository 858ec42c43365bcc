"""
Fusion history log.

Appends one JSONL record per completed orchestration: which strategy ran,
which models contributed, how confident the result was and how many
escalation attempts it took. Useful for tuning thresholds and model tables
offline.

Usage:
    from ensemble.fusion_history import FusionHistoryLogger

    history = FusionHistoryLogger(HistoryConfig(enabled=True))
    history.record(response, model_responses)
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import HistoryConfig
from .types import EnsembleResponse, ModelResponse

logger = logging.getLogger(__name__)


@dataclass
class FusionRecord:
    """One logged orchestration outcome."""

    session_id: str
    prompt_preview: str
    workspace_category: str
    strategy: str
    fusion_strategy: str
    confidence: float
    correction_attempts: int
    total_inference_time: float
    contributing_models: list[str]
    model_confidences: dict[str, float] = field(default_factory=dict)
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FusionRecord:
        """Create from dictionary."""
        return cls(**data)


class FusionHistoryLogger:
    """Append-only JSONL log of orchestration outcomes, with size rotation."""

    def __init__(self, config: HistoryConfig | None = None):
        self.config = config or HistoryConfig()
        self._log_path: Path | None = None
        self._record_count = 0

        if self.config.enabled:
            self._ensure_log_path()

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    def _ensure_log_path(self) -> None:
        """Ensure log directory exists."""
        path = Path(self.config.log_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        self._log_path = path

    def _check_rotation(self) -> None:
        """Rotate if the current file reached the size limit."""
        if self._log_path is None or not self._log_path.exists():
            return

        size_mb = self._log_path.stat().st_size / (1024 * 1024)
        if size_mb >= self.config.max_size_mb:
            self._rotate_logs()

    def _rotated_path(self, index: int) -> Path:
        assert self._log_path is not None
        return self._log_path.with_name(f"{self._log_path.name}.{index}")

    def _rotate_logs(self) -> None:
        """Shift history.jsonl -> .1 -> .2 ..., dropping the oldest."""
        if self._log_path is None:
            return

        oldest = self._rotated_path(self.config.max_files)
        if oldest.exists():
            oldest.unlink()

        for i in range(self.config.max_files - 1, 0, -1):
            source = self._rotated_path(i)
            if source.exists():
                source.rename(self._rotated_path(i + 1))

        if self._log_path.exists():
            self._log_path.rename(self._rotated_path(1))

        logger.info(f"Rotated fusion history: {self._log_path}")

    def record(
        self,
        response: EnsembleResponse,
        model_responses: list[ModelResponse] | None = None,
    ) -> None:
        """
        Append one orchestration outcome.

        Write failures are logged and never interrupt orchestration.
        """
        if not self.config.enabled or self._log_path is None:
            return

        session = response.metadata.session
        entry = FusionRecord(
            session_id=session.id,
            prompt_preview=session.prompt[:100],
            workspace_category=session.workspace_category.value,
            strategy=response.metadata.strategy.value,
            fusion_strategy=response.fusion_strategy.value,
            confidence=response.confidence,
            correction_attempts=response.correction_attempts,
            total_inference_time=response.total_inference_time,
            contributing_models=list(response.contributing_models),
            model_confidences={r.model: r.confidence for r in model_responses or []},
            timestamp=datetime.now().isoformat(),
        )

        try:
            self._check_rotation()
            with open(self._log_path, "a") as f:
                f.write(json.dumps(entry.to_dict()) + "\n")
            self._record_count += 1
        except OSError as e:
            logger.warning(f"Failed to write fusion history: {e}")

    def load(self) -> list[FusionRecord]:
        """Load records from the current log file."""
        records: list[FusionRecord] = []

        if self._log_path is None or not self._log_path.exists():
            return records

        with open(self._log_path) as f:
            for line in f:
                try:
                    records.append(FusionRecord.from_dict(json.loads(line)))
                except (json.JSONDecodeError, TypeError) as e:
                    logger.warning(f"Skipping malformed line: {e}")

        return records

    def get_statistics(self) -> dict[str, Any]:
        """Get logging statistics."""
        stats: dict[str, Any] = {
            "enabled": self.config.enabled,
            "log_path": str(self._log_path) if self._log_path else None,
            "records_logged": self._record_count,
        }

        if self._log_path and self._log_path.exists():
            stats["log_size_mb"] = self._log_path.stat().st_size / (1024 * 1024)

        return stats


__all__ = ["FusionHistoryLogger", "FusionRecord"]
