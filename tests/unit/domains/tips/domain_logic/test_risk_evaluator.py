"""Tests for the triage rule set."""

from __future__ import annotations

import itertools

import pytest

from tipscompass.domains.tips.domain_logic.risk_evaluator import (
    BLEEDING_REASON,
    FEVER_REASON,
    NO_SIGNAL_REASON,
    POSSIBLE_HE_REASON,
    SEVERE_HE_REASON,
    evaluate_risk,
    weight_delta,
)
from tipscompass.domains.tips.domain_logic.risk_models import (
    RISK_LEVELS,
    RISK_RANK,
    CheckIn,
    WeightSample,
    max_risk,
)


def _checkin(**overrides) -> CheckIn:
    fields = {"patient_id": "patient_001", "date": "2026-02-01", "bowel_movements": 3}
    fields.update(overrides)
    return CheckIn(**fields)


def _history(*weights: float) -> list[WeightSample]:
    """Samples newest first, one day apart."""
    return [
        WeightSample(date=f"2026-02-{10 - i:02d}", weight_kg=w)
        for i, w in enumerate(weights)
    ]


class TestMaxRisk:
    def test_ordering(self):
        for a, b in itertools.product(RISK_LEVELS, repeat=2):
            expected = a if RISK_RANK[a] >= RISK_RANK[b] else b
            assert max_risk(a, b) == expected


class TestRules:
    def test_quiet_checkin_is_green(self):
        result = evaluate_risk(_checkin(), [])
        assert result.level == "green"
        assert result.reasons == (NO_SIGNAL_REASON,)

    def test_bleeding(self):
        result = evaluate_risk(_checkin(bleeding=True), [])
        assert result.level == "red"
        assert result.reasons == (BLEEDING_REASON,)

    def test_fever(self):
        result = evaluate_risk(_checkin(fever=True), [])
        assert result.level == "red"
        assert result.reasons == (FEVER_REASON,)

    def test_confusion_without_bowel_movements(self):
        result = evaluate_risk(_checkin(confusion=True, bowel_movements=0), [])
        assert result.level == "red"
        assert result.reasons == (SEVERE_HE_REASON, POSSIBLE_HE_REASON)

    @pytest.mark.parametrize("signal", ["confusion", "sleep_reversal", "tremor"])
    def test_neuro_signal_with_one_bowel_movement(self, signal):
        result = evaluate_risk(_checkin(bowel_movements=1, **{signal: True}), [])
        assert result.level == "yellow"
        assert result.reasons == (POSSIBLE_HE_REASON,)

    def test_two_bowel_movements_clear_neuro_rule(self):
        result = evaluate_risk(_checkin(tremor=True, bowel_movements=2), [])
        assert result.level == "green"
        assert result.reasons == (NO_SIGNAL_REASON,)

    def test_sleep_reversal_without_bowel_movements_is_not_severe(self):
        result = evaluate_risk(_checkin(sleep_reversal=True, bowel_movements=0), [])
        assert result.level == "yellow"
        assert result.reasons == (POSSIBLE_HE_REASON,)

    def test_all_rules_fire_in_order(self):
        result = evaluate_risk(
            _checkin(bleeding=True, fever=True, confusion=True, bowel_movements=0),
            _history(78.0, 75.0),
        )
        assert result.level == "red"
        assert result.reasons == (
            BLEEDING_REASON,
            FEVER_REASON,
            SEVERE_HE_REASON,
            POSSIBLE_HE_REASON,
            "Possible volume overload: +3.0 kg",
        )


class TestWeightTrend:
    def test_gain_at_threshold(self):
        result = evaluate_risk(_checkin(), _history(77.0, 75.0))
        assert result.level == "yellow"
        assert result.reasons == ("Possible volume overload: +2.0 kg",)

    def test_gain_below_threshold(self):
        result = evaluate_risk(_checkin(), _history(76.9, 75.0))
        assert result.level == "green"

    def test_uses_newest_and_oldest_only(self):
        result = evaluate_risk(_checkin(), _history(78.5, 70.0, 80.0, 76.0))
        assert result.reasons == ("Possible volume overload: +2.5 kg",)

    @pytest.mark.parametrize(
        ("newest", "expected"),
        [(77.25, "+2.3 kg"), (77.75, "+2.8 kg"), (85.0, "+10.0 kg")],
    )
    def test_reason_rounds_half_up(self, newest, expected):
        result = evaluate_risk(_checkin(), _history(newest, 75.0))
        assert result.reasons == (f"Possible volume overload: {expected}",)

    def test_weight_loss_is_not_flagged(self):
        assert evaluate_risk(_checkin(), _history(72.0, 76.0)).level == "green"

    @pytest.mark.parametrize("history", [[], _history(90.0)])
    def test_needs_two_samples(self, history):
        assert weight_delta(history) is None
        assert evaluate_risk(_checkin(), history).reasons == (NO_SIGNAL_REASON,)

    def test_trend_does_not_lower_red(self):
        result = evaluate_risk(_checkin(fever=True), _history(80.0, 75.0))
        assert result.level == "red"
        assert result.reasons == (FEVER_REASON, "Possible volume overload: +5.0 kg")


class TestScenarios:
    def test_stable_patient(self):
        result = evaluate_risk(
            _checkin(weight_kg=75.2, bowel_movements=3),
            _history(75.2, 75.0, 75.1),
        )
        assert result.level == "green"
        assert result.reasons == (NO_SIGNAL_REASON,)

    def test_encephalopathy_warning_with_fluid_gain(self):
        result = evaluate_risk(
            _checkin(confusion=True, bowel_movements=1, weight_kg=78.0),
            _history(78.0, 77.0, 76.5, 75.5),
        )
        assert result.level == "yellow"
        assert result.reasons == (POSSIBLE_HE_REASON, "Possible volume overload: +2.5 kg")


class TestProperties:
    _FLAGS = ("bleeding", "fever", "confusion", "sleep_reversal", "tremor")

    def _all_checkins(self):
        for values in itertools.product((False, True), repeat=len(self._FLAGS)):
            for bowel_movements in (0, 1, 2, 5):
                yield _checkin(bowel_movements=bowel_movements, **dict(zip(self._FLAGS, values)))

    def test_total_and_well_formed(self):
        for checkin in self._all_checkins():
            for history in ([], _history(75.0, 75.0), _history(79.0, 75.0)):
                result = evaluate_risk(checkin, history)
                assert result.level in RISK_LEVELS
                assert result.reasons
                if NO_SIGNAL_REASON in result.reasons:
                    assert result.reasons == (NO_SIGNAL_REASON,)
                    assert result.level == "green"

    def test_adding_a_symptom_never_lowers_the_level(self):
        for checkin in self._all_checkins():
            base = evaluate_risk(checkin, [])
            for flag in self._FLAGS:
                if getattr(checkin, flag):
                    continue
                worse = CheckIn(**{**checkin.__dict__, flag: True})
                assert RISK_RANK[evaluate_risk(worse, []).level] >= RISK_RANK[base.level]

    def test_deterministic_and_inputs_untouched(self):
        checkin = _checkin(tremor=True, bowel_movements=1)
        history = _history(78.0, 75.0)
        snapshot = list(history)
        assert evaluate_risk(checkin, history) == evaluate_risk(checkin, history)
        assert history == snapshot
