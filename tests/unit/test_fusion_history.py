"""
Tests for the fusion history log.
"""

import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ensemble.config import HistoryConfig
from ensemble.fusion_history import FusionHistoryLogger, FusionRecord
from ensemble.strategy_classifier import EnsembleStrategy
from ensemble.types import (
    ConversationContext,
    EnsembleMetadata,
    EnsembleResponse,
    EnsembleSession,
    WorkspaceCategory,
)


def _response(confidence=0.9):
    session = EnsembleSession(
        id="session-42",
        prompt="tell me something " * 20,
        context=ConversationContext(),
        workspace_category=WorkspaceCategory.RESEARCH,
    )
    return EnsembleResponse(
        content="answer",
        confidence=confidence,
        contributing_models=["command-r", "mistral-7b"],
        fusion_strategy=EnsembleStrategy.RESEARCH_COLLABORATIVE,
        total_inference_time=1.5,
        correction_attempts=1,
        metadata=EnsembleMetadata(
            session=session, strategy=EnsembleStrategy.DEEP_REASONING, model_count=2
        ),
    )


class TestFusionRecord:
    """Tests for FusionRecord."""

    def test_dict_round_trip(self):
        record = FusionRecord(
            session_id="s",
            prompt_preview="p",
            workspace_category="general",
            strategy="speed",
            fusion_strategy="speed",
            confidence=0.8,
            correction_attempts=0,
            total_inference_time=0.1,
            contributing_models=["phi-2"],
        )

        assert FusionRecord.from_dict(record.to_dict()) == record


class TestFusionHistoryLogger:
    """Tests for FusionHistoryLogger."""

    def test_disabled_writes_nothing(self, tmp_path):
        path = tmp_path / "history.jsonl"
        history = FusionHistoryLogger(HistoryConfig(enabled=False, log_path=str(path)))

        history.record(_response())

        assert not path.exists()
        assert history.get_statistics()["records_logged"] == 0

    def test_record_appends_jsonl(self, tmp_path, response_factory):
        path = tmp_path / "logs" / "history.jsonl"
        history = FusionHistoryLogger(HistoryConfig(enabled=True, log_path=str(path)))

        history.record(_response(), [response_factory("command-r", confidence=0.7)])
        history.record(_response(0.5))

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["session_id"] == "session-42"
        assert first["strategy"] == "reasoning"
        assert first["fusion_strategy"] == "research"
        assert first["workspace_category"] == "research"
        assert first["model_confidences"] == {"command-r": 0.7}
        assert len(first["prompt_preview"]) == 100

    def test_load_skips_malformed_lines(self, tmp_path):
        path = tmp_path / "history.jsonl"
        history = FusionHistoryLogger(HistoryConfig(enabled=True, log_path=str(path)))
        history.record(_response())
        with open(path, "a") as f:
            f.write("not json\n")
        history.record(_response(0.4))

        records = history.load()

        assert [r.confidence for r in records] == [0.9, 0.4]

    def test_rotation(self, tmp_path):
        """A full log is shifted to .1 before the next write."""
        path = tmp_path / "history.jsonl"
        history = FusionHistoryLogger(
            HistoryConfig(enabled=True, log_path=str(path), max_size_mb=0.0, max_files=2)
        )

        history.record(_response(0.1))
        history.record(_response(0.2))
        history.record(_response(0.3))

        assert json.loads(path.read_text())["confidence"] == 0.3
        assert json.loads(Path(f"{path}.1").read_text())["confidence"] == 0.2
        assert json.loads(Path(f"{path}.2").read_text())["confidence"] == 0.1

    def test_rotation_drops_oldest(self, tmp_path):
        path = tmp_path / "history.jsonl"
        history = FusionHistoryLogger(
            HistoryConfig(enabled=True, log_path=str(path), max_size_mb=0.0, max_files=1)
        )

        for confidence in (0.1, 0.2, 0.3):
            history.record(_response(confidence))

        assert json.loads(Path(f"{path}.1").read_text())["confidence"] == 0.2
        assert not Path(f"{path}.2").exists()

    def test_statistics(self, tmp_path):
        path = tmp_path / "history.jsonl"
        history = FusionHistoryLogger(HistoryConfig(enabled=True, log_path=str(path)))
        history.record(_response())

        stats = history.get_statistics()

        assert stats["enabled"] is True
        assert stats["records_logged"] == 1
        assert stats["log_path"] == str(path)
        assert stats["log_size_mb"] > 0
