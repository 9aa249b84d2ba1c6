"""
Puzzle Forge - Orchestrator
Coordinates the generate / check / calibrate / evaluate attempt loop.
"""

import math
import random
import time
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Any, Sequence
from dataclasses import dataclass, field
from enum import Enum

from .config import AppConfig, PipelineConfig
from .errors import BackendError, ErrorKind, GenerationFailure
from .agents.generator import PuzzleGenerator, GenerationRequest
from .calibration.difficulty import DifficultyCalibrator, Calibration
from .history.store import (
    HistoryStore,
    JsonHistoryStore,
    PersistedCandidateSummary,
)
from .models.candidate import Candidate, parse_candidate
from .models.client import FallbackClient
from .models.registry import ModelRegistry
from .models.runtime import GenerativeBackend, OllamaRuntime
from .quality.evaluator import QualityEvaluator, QualityReport, QualityThresholds, Verdict
from .uniqueness.tracker import UniquenessTracker, UniquenessResult, validate_uniqueness, uniqueness_score
from .utils.logging import get_logger, SessionLogger
from .utils.numbers import round_half_up

logger = get_logger(__name__)


class PipelineStage(Enum):
    """Pipeline execution stages."""
    GENERATE = "generate"
    VALIDATE = "validate"
    UNIQUENESS = "uniqueness"
    CALIBRATE = "calibrate"
    EVALUATE = "evaluate"
    DECIDE = "decide"
    COMPLETE = "complete"
    FAILED = "failed"


class Progression(Enum):
    """Difficulty progressions for batch generation."""
    LINEAR = "linear"
    SINE_WAVE = "sine_wave"
    RANDOM = "random"


@dataclass(frozen=True)
class GenerationAttempt:
    """One fully evaluated iteration of the attempt loop."""
    attempt: int
    candidate: Candidate
    calibration: Calibration
    uniqueness: UniquenessResult
    uniqueness_score: float
    report: QualityReport
    elapsed_ms: float
    model_used: Optional[str] = None

    @property
    def final_score(self) -> int:
        return self.report.final_score


@dataclass(frozen=True)
class GenerationResult:
    """Accepted puzzle with everything needed to publish it."""
    candidate: Candidate
    calibrated_difficulty: int
    quality_report: QualityReport
    fingerprint: str
    uniqueness_score: float
    attempts: int
    elapsed_ms: float
    model_used: Optional[str] = None
    pattern_type: str = "unknown"
    degraded: bool = False

    @property
    def final_score(self) -> int:
        return self.quality_report.final_score

    def to_history_summary(self, created_at: Optional[datetime] = None) -> PersistedCandidateSummary:
        return PersistedCandidateSummary.from_candidate(
            self.candidate,
            fingerprint=self.fingerprint,
            pattern_type=self.pattern_type,
            created_at=created_at
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate": self.candidate.to_dict(),
            "calibrated_difficulty": self.calibrated_difficulty,
            "quality_report": self.quality_report.to_dict(),
            "fingerprint": self.fingerprint,
            "uniqueness_score": self.uniqueness_score,
            "attempts": self.attempts,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "model_used": self.model_used,
            "pattern_type": self.pattern_type,
            "degraded": self.degraded
        }


@dataclass
class BatchResult:
    """Outcome of a batch run: accepted results plus per-item failures."""
    results: List[GenerationResult] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    target_difficulties: List[int] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        total = len(self.results) + len(self.failures)
        return len(self.results) / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "failures": list(self.failures),
            "target_difficulties": list(self.target_difficulties),
            "success_rate": round(self.success_rate, 3)
        }


def progression_difficulty(
    index: int,
    count: int,
    start: int,
    progression: Progression,
    rng: Optional[random.Random] = None
) -> int:
    """
    Target difficulty for item `index` of a batch.

    Args:
        index: 0-based position in the batch.
        count: Batch size.
        start: Starting difficulty.
        progression: Shape of the difficulty curve.
        rng: Random source for the random progression.

    Returns:
        Difficulty clamped to [1, 10].
    """
    if progression is Progression.LINEAR:
        value = min(10, start + index // 2)
    elif progression is Progression.SINE_WAVE:
        value = round_half_up(start + 2 * math.sin(index / max(count, 1) * 2 * math.pi))
    else:
        value = (rng or random).randint(start - 1, start + 1)
    return max(1, min(10, int(value)))


class MasterOrchestrator:
    """
    Orchestrates the puzzle generation attempt loop.

    Per attempt:
    1. Generate - ask the backend through the model fallback chain
    2. Validate - required fields and coercion at the ingestion boundary
    3. Uniqueness - fingerprint and similarity against recent history
    4. Calibrate - weighted difficulty from the complexity profile
    5. Evaluate - quality dimensions, final score and verdict
    6. Decide - accept, or keep as best-so-far and retry

    Without an accepted attempt the best-so-far is returned when it clears
    the minimum acceptable score; otherwise GenerationFailure is raised.
    """

    def __init__(
        self,
        generator: PuzzleGenerator,
        tracker: UniquenessTracker,
        calibrator: DifficultyCalibrator,
        evaluator: QualityEvaluator,
        pipeline: Optional[PipelineConfig] = None,
        content_kind: str = "rebus",
        categories: Optional[Sequence[str]] = None,
        session_logger: Optional[SessionLogger] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize orchestrator.

        Args:
            generator: Puzzle generator agent.
            tracker: Uniqueness tracker over the history store.
            calibrator: Difficulty calibrator.
            evaluator: Quality evaluator.
            pipeline: Attempt loop settings.
            content_kind: "rebus" or "word".
            categories: Categories this mode draws from when none is given.
            session_logger: Optional JSONL event log.
            clock: Monotonic clock in seconds (injected in tests).
        """
        self.generator = generator
        self.tracker = tracker
        self.calibrator = calibrator
        self.evaluator = evaluator
        self.pipeline = pipeline or PipelineConfig()
        self.content_kind = content_kind
        self.categories = list(categories or [])
        self.session_logger = session_logger
        self.clock = clock
        self.stage: Optional[PipelineStage] = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        backend: Optional[GenerativeBackend] = None,
        history_store: Optional[HistoryStore] = None,
        session_id: Optional[str] = None
    ) -> "MasterOrchestrator":
        """
        Wire up every component from application configuration.

        Args:
            config: Loaded AppConfig.
            backend: Backend override (defaults to OllamaRuntime).
            history_store: History override (defaults to the JSON file).
            session_id: Session log id; a new one is created when omitted.

        Returns:
            Ready-to-use orchestrator.
        """
        backend = backend or OllamaRuntime(config.backend)
        registry = ModelRegistry(config.tiers)
        list_models = getattr(backend, "list_models", None)
        if list_models is not None:
            installed = list_models()
            if installed:
                registry.set_available_models(installed)
                logger.info("Found %d installed models", len(installed))
            else:
                logger.warning("Backend reported no installed models; using configured chains as-is")
        client = FallbackClient(
            backend,
            registry,
            retry_config=config.retry,
            default_timeout=config.backend.timeout
        )
        store = history_store or JsonHistoryStore(config.history_path)
        session_logger = SessionLogger(config.sessions_dir, session_id or uuid.uuid4().hex[:12])

        return cls(
            generator=PuzzleGenerator(client),
            tracker=UniquenessTracker(store, config.uniqueness),
            calibrator=DifficultyCalibrator(config.difficulty),
            evaluator=QualityEvaluator(config.quality),
            pipeline=config.pipeline,
            content_kind=config.mode_config.content.kind,
            categories=config.mode_config.content.categories,
            session_logger=session_logger
        )

    def _log(self, stage: PipelineStage, event: str, data: Optional[Dict[str, Any]] = None):
        self.stage = stage
        if self.session_logger is not None:
            self.session_logger.log(stage.value, event, data)

    def thresholds_for_attempt(self, attempt: int, base: QualityThresholds) -> QualityThresholds:
        """First attempt gets both bars lowered; later attempts use them as configured."""
        if attempt == 1:
            return base.relieved(self.evaluator.config.first_attempt_relief)
        return base

    def _base_thresholds(self, quality_threshold: Optional[int]) -> QualityThresholds:
        base = self.evaluator.default_thresholds
        if quality_threshold is None:
            return base
        return QualityThresholds(
            publish=quality_threshold,
            revision=min(base.revision, quality_threshold)
        )

    def _tier_for_attempt(self, attempt: int) -> str:
        if attempt > 1 and self.pipeline.escalation_tier:
            return self.pipeline.escalation_tier
        return self.pipeline.tier

    def _temperature_for_attempt(self, attempt: int, tier: str) -> float:
        registry = self.generator.client.registry
        try:
            base = registry.tier_config(tier).temperature
        except KeyError:
            base = 0.7
        return round(min(1.0, base + self.pipeline.temperature_step * (attempt - 1)), 2)

    def _is_accepted(self, report: QualityReport, thresholds: QualityThresholds, attempt: int) -> bool:
        if report.overall >= thresholds.publish and report.verdict is Verdict.PUBLISH:
            return True
        # Strong candidates on later attempts may bypass a failed robustness check
        return report.overall >= self.pipeline.strong_candidate_score and attempt >= 2

    def _to_result(self, best: GenerationAttempt, attempts: int, started: float, degraded: bool) -> GenerationResult:
        return GenerationResult(
            candidate=best.candidate,
            calibrated_difficulty=best.calibration.difficulty,
            quality_report=best.report,
            fingerprint=best.uniqueness.fingerprint,
            uniqueness_score=best.uniqueness_score,
            attempts=attempts,
            elapsed_ms=(self.clock() - started) * 1000,
            model_used=best.model_used,
            pattern_type=best.uniqueness.pattern_type,
            degraded=degraded
        )

    def generate(
        self,
        target_difficulty: Optional[int] = None,
        category: Optional[str] = None,
        require_novelty: bool = False,
        quality_threshold: Optional[int] = None,
        max_attempts: Optional[int] = None,
        extra_history: Optional[Sequence[PersistedCandidateSummary]] = None
    ) -> GenerationResult:
        """
        Run the attempt loop for one puzzle.

        Args:
            target_difficulty: Desired difficulty (defaults to the mode's target).
            category: Category to ask for (defaults to any of the mode's).
            require_novelty: Treat every non-unique candidate as a failed attempt.
            quality_threshold: Publish bar override.
            max_attempts: Attempt budget override.
            extra_history: Puzzles accepted earlier in the same run.

        Returns:
            GenerationResult (degraded=True when only best-so-far was usable).

        Raises:
            GenerationFailure: No attempt reached the minimum acceptable score.
            BackendError: A non-retryable backend error other than a timeout.
        """
        started = self.clock()
        max_attempts = max(1, max_attempts or self.pipeline.max_attempts)
        target = self.calibrator.clamp(
            target_difficulty if target_difficulty is not None else self.calibrator.config.default_target
        )
        base_thresholds = self._base_thresholds(quality_threshold)

        # History is read once and treated as read-only for the whole run
        history = list(self.tracker.recent_history())
        if extra_history:
            history = list(extra_history) + history
        avoid_answers = [item.label for item in history]

        best: Optional[GenerationAttempt] = None
        reasons: List[str] = []
        feedback: List[str] = []
        avoid_patterns: List[str] = []
        attempt = 0

        self._log(PipelineStage.GENERATE, "run_started", {
            "target_difficulty": target,
            "category": category,
            "require_novelty": require_novelty,
            "max_attempts": max_attempts,
            "history_size": len(history)
        })

        while attempt < max_attempts:
            attempt += 1
            attempt_started = self.clock()
            thresholds = self.thresholds_for_attempt(attempt, base_thresholds)
            tier = self._tier_for_attempt(attempt)

            try:
                self._log(PipelineStage.GENERATE, "attempt_started", {"attempt": attempt, "tier": tier})
                draft = self.generator.generate(GenerationRequest(
                    target_difficulty=target,
                    kind=self.content_kind,
                    category=category,
                    require_novelty=require_novelty or attempt > 1,
                    tier=tier,
                    temperature=self._temperature_for_attempt(attempt, tier),
                    feedback=feedback,
                    avoid_answers=avoid_answers,
                    avoid_patterns=avoid_patterns
                ))

                self._log(PipelineStage.VALIDATE, "validating", {
                    "attempt": attempt,
                    "model": draft.outcome.model_used,
                    "prompt_hash": SessionLogger.compute_hash(draft.prompt)
                })
                candidate = parse_candidate(draft.data, self.content_kind, model_used=draft.outcome.model_used)
                if category and candidate.category != category:
                    logger.info("Attempt %d: asked for %s, got %s", attempt, category, candidate.category)

                self._log(PipelineStage.UNIQUENESS, "checking", {"attempt": attempt, "answer": candidate.answer})
                uniqueness = validate_uniqueness(candidate, history, self.tracker.config)
                if not uniqueness.is_unique and (
                    require_novelty or uniqueness.max_similarity > self.tracker.config.rejection_threshold
                ):
                    reason = f"attempt {attempt}: not unique (similarity {uniqueness.max_similarity:.2f})"
                    reasons.append(reason)
                    feedback = list(uniqueness.notes)
                    if uniqueness.pattern_overused and uniqueness.pattern_type not in avoid_patterns:
                        avoid_patterns.append(uniqueness.pattern_type)
                    logger.info("Rejected %s", reason)
                    self._log(PipelineStage.UNIQUENESS, "rejected", uniqueness.to_dict())
                    continue

                self._log(PipelineStage.CALIBRATE, "calibrating", {"attempt": attempt})
                calibration = self.calibrator.calibrate_candidate(candidate)

                self._log(PipelineStage.EVALUATE, "evaluating", {"attempt": attempt})
                report = self.evaluator.evaluate(
                    candidate,
                    calibration.difficulty,
                    profile=calibration.profile,
                    thresholds=thresholds,
                    attempt=attempt
                )
            except BackendError as e:
                if e.aborts_run:
                    self._log(PipelineStage.FAILED, "backend_fatal", {"attempt": attempt, "kind": e.kind.value})
                    raise
                # A timeout ends only the call that timed out
                label = "timed out" if e.kind is ErrorKind.TIMEOUT else f"unavailable ({e.kind.value})"
                reason = f"attempt {attempt}: backend {label}"
                reasons.append(reason)
                logger.warning("Attempt %d failed: %s", attempt, e.message)
                self._log(PipelineStage.GENERATE, "attempt_failed", {"attempt": attempt, "error": e.kind.value})
                continue
            except Exception as e:
                reason = f"attempt {attempt}: {e.__class__.__name__}: {e}"
                reasons.append(reason)
                logger.warning("Attempt %d failed at stage %s: %s", attempt, self.stage.value if self.stage else "?", e)
                self._log(PipelineStage.FAILED, "attempt_failed", {"attempt": attempt, "error": str(e)})
                continue

            current = GenerationAttempt(
                attempt=attempt,
                candidate=candidate,
                calibration=calibration,
                uniqueness=uniqueness,
                uniqueness_score=uniqueness_score(uniqueness),
                report=report,
                elapsed_ms=(self.clock() - attempt_started) * 1000,
                model_used=draft.outcome.model_used
            )

            self._log(PipelineStage.DECIDE, "scored", {
                "attempt": attempt,
                "overall": report.overall,
                "final_score": report.final_score,
                "verdict": report.verdict.value,
                "publish_threshold": thresholds.publish
            })

            if self._is_accepted(report, thresholds, attempt):
                logger.info(
                    "Accepted %r on attempt %d (overall %d, final %d)",
                    candidate.answer, attempt, report.overall, report.final_score
                )
                self._log(PipelineStage.COMPLETE, "accepted", {"attempt": attempt})
                return self._to_result(current, attempt, started, degraded=False)

            if best is None or current.final_score > best.final_score:
                best = current

            reasons.append(
                f"attempt {attempt}: score {report.final_score} below publish threshold {thresholds.publish}"
            )
            feedback = list(report.action_items)

        minimum = self.pipeline.minimum_acceptable_score
        if best is not None and best.final_score >= minimum:
            logger.warning(
                "No attempt cleared the bar; using best-so-far %r (score %d)",
                best.candidate.answer, best.final_score
            )
            self._log(PipelineStage.COMPLETE, "accepted_degraded", {"attempt": best.attempt, "score": best.final_score})
            return self._to_result(best, attempt, started, degraded=True)

        best_score = best.final_score if best is not None else None
        self._log(PipelineStage.FAILED, "exhausted", {"best_score": best_score, "reasons": reasons})
        raise GenerationFailure(
            f"No acceptable puzzle after {attempt} attempts (best score {best_score}, minimum {minimum})",
            best_score=best_score,
            best_report=best.report if best is not None else None,
            reasons=reasons,
            attempts=attempt
        )

    def generate_batch(
        self,
        count: int,
        start_difficulty: Optional[int] = None,
        progression: Progression = Progression.LINEAR,
        category: Optional[str] = None,
        require_novelty: bool = False,
        rng: Optional[random.Random] = None
    ) -> BatchResult:
        """
        Generate several puzzles in sequence along a difficulty curve.

        Each accepted puzzle joins the in-run history so later items are
        checked against it. Categories rotate through the mode's list when
        none is given. Item failures are collected, not raised.

        Args:
            count: Number of puzzles.
            start_difficulty: First target difficulty.
            progression: Difficulty curve.
            category: Fixed category for every item.
            require_novelty: Passed to every item (any similarity conflict fails the attempt).
            rng: Random source for the random progression.

        Returns:
            BatchResult.
        """
        start = start_difficulty if start_difficulty is not None else self.calibrator.config.default_target
        batch = BatchResult()
        accepted: List[PersistedCandidateSummary] = []

        for index in range(count):
            target = progression_difficulty(index, count, start, progression, rng)
            batch.target_difficulties.append(target)
            item_category = category or (self.categories[index % len(self.categories)] if self.categories else None)

            try:
                result = self.generate(
                    target_difficulty=target,
                    category=item_category,
                    require_novelty=require_novelty,
                    max_attempts=self.pipeline.batch_max_attempts,
                    extra_history=accepted
                )
            except GenerationFailure as e:
                logger.warning("Batch item %d failed: %s", index + 1, e)
                batch.failures.append({"index": index, "target_difficulty": target, **e.to_dict()})
                continue

            batch.results.append(result)
            accepted.append(result.to_history_summary())

        logger.info("Batch complete: %d/%d accepted", len(batch.results), count)
        return batch

    @staticmethod
    def select_optimal(
        results: Sequence[GenerationResult],
        skill_level: int = 5,
        recent_difficulties: Optional[Sequence[int]] = None
    ) -> GenerationResult:
        """
        Pick the result that best fits a player.

        With three or more recent difficulties the target is the mean of
        the skill level and the recent average; otherwise the skill level.
        Ties on distance go to the higher final score.
        """
        if not results:
            raise ValueError("No results to select from")

        target = float(skill_level)
        if recent_difficulties and len(recent_difficulties) >= 3:
            recent_mean = sum(recent_difficulties) / len(recent_difficulties)
            target = (skill_level + recent_mean) / 2

        return min(
            results,
            key=lambda r: (abs(r.calibrated_difficulty - target), -r.final_score)
        )


def record_result(store: HistoryStore, result: GenerationResult):
    """Persist an accepted result into a store that supports record()."""
    record = getattr(store, "record", None)
    if record is None:
        raise TypeError(f"History store {type(store).__name__} is read-only")
    record(result.to_history_summary())
