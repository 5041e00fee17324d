"""Tests for shaping collaborator responses into (label, score)."""

import pytest

from mindecho.services.normalizer import (
    BareString,
    CandidateList,
    NormalizedSignal,
    SingleLabel,
    Unrecognized,
    decode_response,
    normalize,
)


class TestDecodeResponse:
    """Tests for the one-step variant classification."""

    def test_top_level_list_is_candidate_list(self):
        variant = decode_response([{"label": "sad", "score": 0.4}])
        assert isinstance(variant, CandidateList)

    def test_wrapped_lists(self):
        assert isinstance(decode_response({"emotions": [{"name": "joy"}]}), CandidateList)
        assert isinstance(decode_response({"result": [{"label": "joy"}]}), CandidateList)

    def test_single_label(self):
        assert isinstance(decode_response({"label": "calm", "score": 0.3}), SingleLabel)

    def test_bare_string(self):
        assert decode_response("Joy") == BareString("joy")

    @pytest.mark.parametrize("raw", [None, [], "", "   ", 42, {"foo": "bar"}, {"emotions": []}])
    def test_unrecognized(self, raw):
        assert isinstance(decode_response(raw), Unrecognized)


class TestNormalize:
    """Tests for normalize()."""

    def test_picks_highest_score(self):
        raw = [{"label": "sad", "score": 0.4}, {"label": "happy", "score": 0.9}]
        assert normalize(raw) == NormalizedSignal("happy", 0.9)

    def test_ties_keep_first_seen(self):
        raw = {"emotions": [{"label": "calm", "score": 0.5}, {"label": "sad", "score": 0.5}]}
        assert normalize(raw).label == "calm"

    def test_name_used_when_label_missing(self):
        assert normalize({"result": [{"name": "Anger", "score": 0.7}]}) == NormalizedSignal("anger", 0.7)

    def test_missing_score_defaults_to_point_eight(self):
        assert normalize([{"label": "sad"}]).score == 0.8
        assert normalize({"label": "calm"}).score == 0.8

    def test_missing_score_competes_as_point_eight(self):
        raw = [{"label": "sad", "score": 0.7}, {"label": "happy"}]
        assert normalize(raw) == NormalizedSignal("happy", 0.8)

    def test_bare_string_scores_point_six(self):
        assert normalize("joy") == NormalizedSignal("joy", 0.6)

    def test_scores_are_clamped(self):
        assert normalize({"label": "happy", "score": 3}).score == 1.0
        assert normalize({"label": "happy", "score": -1}).score == 0.0

    def test_unusable_candidates_are_skipped(self):
        raw = [{"score": 0.99}, {"label": "sad", "score": "high"}, {"label": "calm", "score": 0.2}]
        assert normalize(raw) == NormalizedSignal("calm", 0.2)

    def test_boolean_score_rejected(self):
        assert normalize({"label": "sad", "score": True}) is None

    @pytest.mark.parametrize("raw", [None, [], {}, 3.5, [None, 1, "x"]])
    def test_absent_or_unusable_returns_none(self, raw):
        assert normalize(raw) is None

    def test_never_raises_on_hostile_input(self):
        class Exploding(dict):
            def get(self, *args, **kwargs):
                raise RuntimeError("boom")

        assert normalize(Exploding(label="x")) is None
