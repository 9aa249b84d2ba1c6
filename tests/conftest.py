"""Shared fixtures for the test-suite."""

import json
from pathlib import Path

import pytest

from puzzle_forge.config import (
    DifficultyConfig,
    PipelineConfig,
    QualityConfig,
    RetryConfig,
    TierConfig,
    UniquenessConfig,
)
from puzzle_forge.agents.generator import PuzzleGenerator
from puzzle_forge.calibration.difficulty import DifficultyCalibrator
from puzzle_forge.history.store import InMemoryHistoryStore
from puzzle_forge.models.client import FallbackClient
from puzzle_forge.models.registry import ModelRegistry
from puzzle_forge.orchestrator import MasterOrchestrator
from puzzle_forge.quality.evaluator import QualityEvaluator
from puzzle_forge.uniqueness.tracker import UniquenessTracker

from mocks import MockBackend, rebus_record

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def project_root():
    return PROJECT_ROOT


@pytest.fixture
def tiers():
    return {
        "smart": TierConfig(primary="model-a", fallbacks=["model-b", "model-a", "model-c"], temperature=0.7),
        "creative": TierConfig(primary="model-c", fallbacks=["model-a"], temperature=0.9),
    }


@pytest.fixture
def registry(tiers):
    return ModelRegistry(tiers)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def no_retry():
    return RetryConfig(max_attempts=1)


@pytest.fixture
def history_store():
    return InMemoryHistoryStore()


@pytest.fixture
def make_orchestrator(registry, no_retry, history_store):
    """Factory wiring a real pipeline around a mock backend."""

    def _make(backend=None, evaluator=None, pipeline=None, difficulty=None, store=None):
        backend = backend or MockBackend(default=json.dumps(rebus_record()))
        client = FallbackClient(backend, registry, retry_config=no_retry, sleep=lambda s: None)
        clock_ticks = iter(range(0, 10_000))
        return MasterOrchestrator(
            generator=PuzzleGenerator(client),
            tracker=UniquenessTracker(store if store is not None else history_store, UniquenessConfig()),
            calibrator=DifficultyCalibrator(difficulty or DifficultyConfig()),
            evaluator=evaluator or QualityEvaluator(QualityConfig()),
            pipeline=pipeline or PipelineConfig(),
            content_kind="rebus",
            categories=["compound_words", "phonetic"],
            clock=lambda: float(next(clock_ticks))
        )

    return _make
