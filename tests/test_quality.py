"""Tests for the quality evaluator."""

import dataclasses

import pytest

from puzzle_forge.config import QualityConfig
from puzzle_forge.models.candidate import parse_candidate
from puzzle_forge.quality.evaluator import (
    ACTION_TEMPLATES,
    QualityEvaluator,
    QualityThresholds,
    Verdict,
    verdict_for,
    weighted_overall,
)

from mocks import rebus_record, word_record


@pytest.fixture
def evaluator():
    return QualityEvaluator(QualityConfig())


@pytest.fixture
def candidate():
    return parse_candidate(rebus_record())


def leaky_candidate():
    return parse_candidate(rebus_record(
        rebusPuzzle="🌻 sunflower",
        explanation="Sun",
        hints=["It is a sunflower", "Yellow", "yellow"],
    ))


def test_rebus_dimension_scores(evaluator, candidate):
    scores = evaluator.score_dimensions(candidate, 4)

    assert scores == {
        "clarity": 80,
        "creativity": 60,
        "solvability": 58,
        "appropriateness": 100,
        "visual_appeal": 40,
        "educational_value": 85,
        "fun_factor": 85,
    }
    assert all(0 <= value <= 100 for value in scores.values())


def test_word_dimension_scores(evaluator):
    report = evaluator.evaluate(parse_candidate(word_record(), "word"), 5)

    assert set(report.dimension_scores) == {
        "clarity", "creativity", "solvability", "appropriateness", "educational_value"
    }
    assert report.overall == 75


def test_weighted_overall_ignores_unweighted_dimensions():
    assert weighted_overall({"clarity": 50, "extra": 100}, {"clarity": 1.0}) == 50
    assert weighted_overall({"clarity": 50}, {}) == 0


@pytest.mark.parametrize("overall, expected", [
    (100, Verdict.PUBLISH),
    (70, Verdict.PUBLISH),
    (69, Verdict.REVISE),
    (60, Verdict.REVISE),
    (59, Verdict.REJECT),
    (0, Verdict.REJECT),
])
def test_verdict_for(overall, expected):
    assert verdict_for(overall, QualityThresholds(70, 60)) is expected


def test_verdict_is_monotonic_in_overall():
    order = [Verdict.REJECT, Verdict.REVISE, Verdict.PUBLISH]
    thresholds = QualityThresholds(70, 60)
    ranks = [order.index(verdict_for(score, thresholds)) for score in range(101)]

    assert ranks == sorted(ranks)


def test_relieved_thresholds_never_go_negative():
    assert QualityThresholds(70, 60).relieved(10) == QualityThresholds(60, 50)
    assert QualityThresholds(5, 3).relieved(10) == QualityThresholds(0, 0)


def test_first_attempt_skips_robustness(evaluator, candidate):
    report = evaluator.evaluate(candidate, 4, attempt=1)

    assert report.overall == 69
    assert report.final_score == report.overall
    assert report.robustness_checked is False
    assert report.robustness_passed
    assert report.verdict is Verdict.REVISE


def test_relieved_thresholds_publish_on_first_attempt(evaluator, candidate):
    report = evaluator.evaluate(candidate, 4, thresholds=QualityThresholds(60, 50), attempt=1)

    assert report.verdict is Verdict.PUBLISH
    # visual_appeal (40) is still under the relieved revision bar of 50
    assert report.action_items == (ACTION_TEMPLATES["visual_appeal"],)


def test_later_attempt_blends_robustness(evaluator, candidate):
    report = evaluator.evaluate(candidate, 4, attempt=2)

    assert report.robustness_score == 100
    # 69 * 0.7 + 100 * 0.3
    assert report.final_score == 78
    assert report.overall == 69


def test_robustness_flags_leaks(evaluator):
    score, issues = evaluator.check_robustness(leaky_candidate())

    # answer in content, first hint, duplicate hints, short explanation
    assert score == 10
    assert len(issues) == 4


def test_robustness_failure_downgrades_publish(evaluator):
    report = evaluator.evaluate(leaky_candidate(), 4, thresholds=QualityThresholds(50, 40), attempt=2)

    assert report.overall >= 50
    assert report.robustness_passed is False
    assert report.verdict is Verdict.REVISE
    assert "The first hint gives the answer away." in report.action_items


def test_action_items_list_weakest_dimensions_first(evaluator, candidate):
    report = evaluator.evaluate(candidate, 4, attempt=1)

    assert report.action_items == (
        ACTION_TEMPLATES["visual_appeal"],
        ACTION_TEMPLATES["solvability"],
    )


def test_action_items_name_weakest_dimension_when_none_below_revision(evaluator):
    scores = {"clarity": 65, "creativity": 62}

    items = evaluator.action_items(scores, QualityThresholds(70, 60), Verdict.REVISE)

    assert items == [ACTION_TEMPLATES["creativity"]]


def test_configured_weights_replace_defaults(candidate):
    evaluator = QualityEvaluator(QualityConfig(dimension_weights={"rebus": {"appropriateness": 1.0}}))

    assert evaluator.evaluate(candidate, 4).overall == 100


def test_report_to_dict(evaluator, candidate):
    data = evaluator.evaluate(candidate, 4, attempt=2).to_dict()

    # The verdict follows the overall score (69), not the blended final
    assert data["verdict"] == "revise"
    assert data["final_score"] == 78
    assert data["thresholds"] == {"publish": 70, "revision": 60}
    assert data["robustness_score"] == 100


def test_weighted_overall_rounds_half_up():
    assert weighted_overall({"clarity": 70, "creativity": 71}, {"clarity": 1.0, "creativity": 1.0}) == 71
    assert weighted_overall({"clarity": 68, "creativity": 69}, {"clarity": 1.0, "creativity": 1.0}) == 69


def test_final_blend_rounds_half_up(evaluator, monkeypatch):
    # Answer spelled out in the puzzle: robustness 60, and 75 * 0.7 + 60 * 0.3 = 70.5
    candidate = parse_candidate(rebus_record(rebusPuzzle="🌻 sunflower"))
    monkeypatch.setattr(evaluator, "score_dimensions", lambda *args, **kwargs: {"clarity": 75})

    report = evaluator.evaluate(candidate, 4, attempt=2)

    assert report.overall == 75
    assert report.robustness_score == 60
    assert report.final_score == 71


def test_report_is_read_only(evaluator, candidate):
    report = evaluator.evaluate(candidate, 4, attempt=2)

    with pytest.raises(dataclasses.FrozenInstanceError):
        report.overall = 0
    with pytest.raises(TypeError):
        report.dimension_scores["clarity"] = 0
    assert isinstance(report.action_items, tuple)
    assert isinstance(report.robustness_issues, tuple)
