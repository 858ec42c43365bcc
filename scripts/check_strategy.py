#!/usr/bin/env python3
"""
Show which ensemble strategy and models a prompt would get.

Usage:
    check_strategy.py "prompt text" [--workspace code] [--memory-gb 12]
    echo "prompt" | check_strategy.py

Prints one JSON object: prompt analysis, strategy, candidate models and
the models that survive availability and memory filtering. No model is
called.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ensemble.config import EnsembleConfig
from ensemble.model_selector import FixedResourceOracle, ModelSelector, SystemResourceOracle
from ensemble.strategy_classifier import StrategyClassifier, analyze_prompt
from ensemble.types import WorkspaceCategory


def check_strategy(
    prompt: str,
    workspace: WorkspaceCategory = WorkspaceCategory.GENERAL,
    memory_gb: float | None = None,
    config: EnsembleConfig | None = None,
) -> dict:
    """Classify a prompt and resolve its model list."""
    config = config or EnsembleConfig.load()

    classifier = StrategyClassifier(config.classifier)
    strategy = classifier.classify(prompt, None, workspace)

    resources = FixedResourceOracle(memory_gb) if memory_gb is not None else SystemResourceOracle()
    selector = ModelSelector(
        resources=resources,
        models=config.models,
        resource_config=config.resources,
    )

    return {
        "analysis": analyze_prompt(prompt, None, config.classifier).model_dump(mode="json"),
        "workspace": workspace.value,
        "strategy": strategy.value,
        "candidates": selector.candidates(strategy),
        "selected": selector.select(strategy, prompt, workspace),
        "available_memory_gb": round(resources.available_memory_gb(), 2),
    }


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("prompt", nargs="?", help="Prompt text (stdin if omitted)")
    parser.add_argument(
        "--workspace",
        choices=[c.value for c in WorkspaceCategory],
        default=WorkspaceCategory.GENERAL.value,
    )
    parser.add_argument("--memory-gb", type=float, default=None)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    prompt = args.prompt if args.prompt is not None else sys.stdin.read()
    result = check_strategy(prompt, WorkspaceCategory(args.workspace), args.memory_gb)
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
