"""Tests for weighted fusion and the recommendation table."""

import pytest

from mindecho.services.biosignal import BiosignalSummary
from mindecho.services.fusion import (
    RECOMMENDATIONS,
    FusionInput,
    collect_votes,
    eeg_label,
    fuse,
    recommend,
)
from mindecho.services.normalizer import NormalizedSignal


class TestEmptyInput:
    def test_all_absent_is_neutral_grounding(self):
        result = fuse(FusionInput())
        assert result.primary == "neutral"
        assert result.confidence == 0.5
        assert result.recommendation.exercise_id == "grounding"


class TestSingleModality:
    def test_face_only_has_full_confidence(self):
        result = fuse(FusionInput(face=NormalizedSignal("Happy", 0.9)))
        assert result.primary == "happy"
        assert result.confidence == 1.0
        assert result.recommendation.exercise_id == "celebrate"

    def test_text_only(self):
        result = fuse(FusionInput(text=NormalizedSignal("sad", 0.8)))
        assert (result.primary, result.confidence) == ("sad", 1.0)

    def test_zero_score_still_picks_label(self):
        result = fuse(FusionInput(face=NormalizedSignal("sad", 0.0)))
        assert result.primary == "sad"
        assert result.confidence == 0.0

    @pytest.mark.parametrize(
        "anxiety,label,weight",
        [(0.8, "anxious", 0.15 * 0.7), (0.2, "calm", 0.15 * 0.7), (0.5, "neutral", 0.15)],
    )
    def test_eeg_only(self, anxiety, label, weight):
        inp = FusionInput(eeg=BiosignalSummary(anxiety=anxiety))
        assert collect_votes(inp) == {label: pytest.approx(weight)}
        assert fuse(inp).primary == label

    def test_eeg_thresholds_are_exclusive(self):
        assert eeg_label(0.6) == "neutral"
        assert eeg_label(0.35) == "neutral"
        assert eeg_label(0.61) == "anxious"
        assert eeg_label(0.34) == "calm"


class TestCombination:
    def test_weighted_vote(self):
        inp = FusionInput(
            face=NormalizedSignal("happy", 0.6),                # 0.30
            text=NormalizedSignal("sad", 0.8),                  # 0.28
            eeg=BiosignalSummary(anxiety=0.9),                  # anxious 0.09
        )
        result = fuse(inp)
        assert result.primary == "happy"
        assert result.confidence == round(0.30 / 0.67, 2)

    def test_same_label_votes_accumulate(self):
        inp = FusionInput(
            face=NormalizedSignal("calm", 0.2),                 # 0.10
            text=NormalizedSignal("sad", 0.4),                  # 0.14
            eeg=BiosignalSummary(anxiety=0.1),                  # calm 0.09
        )
        votes = collect_votes(inp)
        assert votes["calm"] == pytest.approx(0.19)
        assert fuse(inp).primary == "calm"

    def test_tie_goes_to_first_inserted(self):
        inp = FusionInput(
            face=NormalizedSignal("happy", 0.7),                # 0.35
            text=NormalizedSignal("sad", 1.0),                  # 0.35
        )
        result = fuse(inp)
        assert result.primary == "happy"
        assert result.confidence == 0.5

    def test_unknown_label_falls_back_to_neutral_recommendation(self):
        result = fuse(FusionInput(face=NormalizedSignal("surprise", 0.9)))
        assert result.primary == "surprise"
        assert result.recommendation == RECOMMENDATIONS["neutral"]


class TestRecommendationTable:
    def test_table_contents(self):
        assert {k: v.exercise_id for k, v in RECOMMENDATIONS.items()} == {
            "anxious": "breathing_2min",
            "calm": "journaling",
            "happy": "celebrate",
            "sad": "gentle_move",
            "focused": "micro_task",
            "energized": "micro_sprint",
            "neutral": "grounding",
        }

    def test_anxious_entry(self):
        rec = recommend("anxious")
        assert rec.title == "2-min breathing"
        assert rec.desc == "Box breathing: 4-4-4-4 for 2 minutes."

    def test_to_dict_shape(self):
        d = fuse(FusionInput()).to_dict()
        assert d == {
            "primary": "neutral",
            "confidence": 0.5,
            "recommendation": {
                "exercise_id": "grounding",
                "title": "Grounding",
                "desc": "Grounding exercise: 5-4-3-2-1.",
            },
        }
