"""Tests for difficulty calibration."""

import pytest

from puzzle_forge.calibration.difficulty import (
    DifficultyCalibrator,
    adaptive_difficulty,
    calibration_recommendation,
)
from puzzle_forge.config import DifficultyConfig
from puzzle_forge.models.candidate import ComplexityProfile, coerce_score, parse_candidate
from puzzle_forge.utils.numbers import round_half_up

from mocks import rebus_record, word_record

ALL_FACTORS = ("visual_ambiguity", "cognitive_steps", "cultural_knowledge", "vocabulary_level", "pattern_novelty")


def without_profile(**overrides):
    record = rebus_record(**overrides)
    del record["complexityScore"]
    return record


def test_default_record_calibrates_from_profile():
    calibration = DifficultyCalibrator().calibrate_candidate(parse_candidate(rebus_record()))

    # 3*.2 + 5*.3 + 3*.2 + 4*.15 + 6*.15 = 4.2
    assert calibration.source == "profile"
    assert calibration.raw_score == pytest.approx(4.2)
    assert calibration.difficulty == 4
    assert calibration.recommendation == "Proposed difficulty is accurate."


def test_weighted_score_ties_round_up():
    profile = ComplexityProfile.from_mapping({
        "visual_ambiguity": 4,
        "cognitive_steps": 4,
        "cultural_knowledge": 5,
        "vocabulary_level": 5,
        "pattern_novelty": 5,
    })

    # 4*.2 + 4*.3 + 5*.2 + 5*.15 + 5*.15 = 4.5
    assert DifficultyCalibrator().calibrate(profile) == 5


@pytest.mark.parametrize("value, expected", [(4.5, 5), (70.5, 71), (2.5, 3), (2.49, 2), (0.5, 1)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_coerce_score_rounds_half_up():
    assert coerce_score(6.5) == 7
    assert coerce_score("2.5") == 3


@pytest.mark.parametrize("value", [0, 1, 5, 10, 15])
@pytest.mark.parametrize("band", [(1, 10), (4, 8)])
def test_calibration_always_inside_band(value, band):
    calibrator = DifficultyCalibrator(DifficultyConfig(min_difficulty=band[0], max_difficulty=band[1]))
    profile = ComplexityProfile.from_mapping({name: value for name in ALL_FACTORS})

    result = calibrator.calibrate(profile)

    assert isinstance(result, int)
    assert band[0] <= result <= band[1]


def test_weights_are_not_normalized():
    calibrator = DifficultyCalibrator()
    profile = ComplexityProfile.from_mapping({"visual_ambiguity": 6, "cognitive_steps": 6})

    assert calibrator.weighted_score(profile, {"visual_ambiguity": 1.0, "cognitive_steps": 1.0}) == 12
    assert calibrator.calibrate(profile, {"visual_ambiguity": 1.0, "cognitive_steps": 1.0}) == 10
    assert calibrator.calibrate(profile, {"visual_ambiguity": 0.1}) == 1


def test_no_shared_factors_uses_profile_mean():
    calibrator = DifficultyCalibrator()
    profile = ComplexityProfile.from_mapping({"visual_ambiguity": 4, "cognitive_steps": 6})

    assert calibrator.weighted_score(profile, {"word_length": 1.0}) == 5


def test_missing_profile_uses_fallback_within_band():
    calibrator = DifficultyCalibrator(DifficultyConfig(min_difficulty=4, max_difficulty=8))

    assert calibrator.calibrate(None, fallback=7) == 7
    assert calibrator.calibrate(ComplexityProfile(), fallback=12) == 8
    assert calibrator.calibrate(None) == calibrator.config.default_target


def test_rebus_without_profile_uses_heuristics():
    candidate = parse_candidate(without_profile(explanation="Sun + flower = sunflower", difficulty=9))

    calibration = DifficultyCalibrator().calibrate_candidate(candidate)

    # visual 3, steps 4, cultural 2, vocabulary 3, novelty 5 -> 3.4
    assert calibration.source == "heuristic"
    assert calibration.profile.get("cognitive_steps") == 4
    assert calibration.difficulty == 3
    assert calibration.recommendation.startswith("Significant mismatch")


def test_word_heuristic_scales_with_answer_length():
    calibrator = DifficultyCalibrator()

    anagram = calibrator.calibrate_candidate(parse_candidate(word_record(), "word"))
    cryptogram = calibrator.calibrate_candidate(parse_candidate(word_record(category="cryptogram"), "word"))

    assert anagram.difficulty == 1
    assert cryptogram.raw_score == pytest.approx(1.8)
    assert cryptogram.difficulty == 2
    assert anagram.source == cryptogram.source == "heuristic"


def test_word_weights_from_config_take_precedence():
    config = DifficultyConfig(factor_weights={"word": {"word_length": 1.0}})
    calibrator = DifficultyCalibrator(config)

    assert calibrator.weights_for("word") == {"word_length": 1.0}
    assert "visual_ambiguity" in calibrator.weights_for("rebus")


@pytest.mark.parametrize("proposed, calibrated, prefix", [
    (5, 5, "Proposed difficulty is accurate."),
    (5, 6, "Proposed difficulty is accurate."),
    (5, 7, "Minor adjustment"),
    (2, 8, "Significant mismatch"),
])
def test_calibration_recommendation(proposed, calibrated, prefix):
    assert calibration_recommendation(proposed, calibrated).startswith(prefix)


@pytest.mark.parametrize("results, expected", [
    ([True, True], 5),
    ([True, True, True, True, True], 6),
    ([False, False, False, False], 4),
    ([True, False, True, False], 5),
])
def test_adaptive_difficulty(results, expected):
    assert adaptive_difficulty(5, results) == expected


def test_adaptive_difficulty_respects_band():
    assert adaptive_difficulty(10, [True] * 5) == 10
    assert adaptive_difficulty(4, [False] * 5, min_difficulty=4, max_difficulty=8) == 4
