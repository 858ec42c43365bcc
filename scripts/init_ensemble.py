#!/usr/bin/env python3
"""
Initialize the ensemble orchestrator environment.

Writes a default configuration to ~/.ensemble/config.json (unless one
exists) and creates the fusion history directory.
"""

import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ensemble.config import EnsembleConfig

logger = logging.getLogger("init_ensemble")


def init_ensemble(config_dir: Path | None = None) -> Path:
    """Create default config and history directory; return the config path."""
    config_dir = config_dir or Path.home() / ".ensemble"
    config_dir.mkdir(parents=True, exist_ok=True)

    config_file = config_dir / "config.json"

    # Create default config if not exists
    if not config_file.exists():
        config = EnsembleConfig()
        config.history.log_path = str(config_dir / "fusion_history.jsonl")
        config.save(config_file)
        logger.info(f"Created ensemble config at {config_file}")
    else:
        config = EnsembleConfig.load(config_file)

    history_dir = Path(config.history.log_path).expanduser().parent
    history_dir.mkdir(parents=True, exist_ok=True)

    logger.info("Ensemble initialized")
    return config_file


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)
    init_ensemble(Path(sys.argv[1]) if len(sys.argv) > 1 else None)
