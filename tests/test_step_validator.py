"""Tests for the pure step validator."""

import pytest

from inspectflow.config import AssetKind
from inspectflow.evidence.models import AIAnalysis, EvidenceAsset, GeoLocation
from inspectflow.workflow.step_registry import MethodologyStep, StepRegistry, StepRequirement
from inspectflow.workflow.step_validator import (
    AI_VALIDATION_MISSING,
    ANALYSIS_PENDING,
    EVALUATION_FAILED,
    EVIDENCE_JUDGED_INVALID,
    INSUFFICIENT_EVIDENCE,
    LOW_AI_CONFIDENCE,
    MISSING_GEOLOCATION,
    evaluation_failed,
    validate_step,
)

THERMAL = MethodologyStep.THERMAL_IMAGING
SITE = GeoLocation(latitude=40.0, longitude=-105.0)


def _asset(step=THERMAL, analysis=None, geolocation=SITE, **kwargs) -> EvidenceAsset:
    return EvidenceAsset(
        session_id="s-1",
        step=step,
        kind=AssetKind.THERMAL_IMAGE,
        content_ref="mem://x.jpg",
        geolocation=geolocation,
        analysis=analysis,
        **kwargs,
    )


def _valid(confidence=0.9):
    return AIAnalysis(is_valid=True, confidence=confidence, findings=["moisture"])


def _invalid():
    return AIAnalysis(is_valid=False, confidence=0.8, findings=["blurry"])


@pytest.fixture
def thermal_req():
    return StepRegistry().requirement_for(THERMAL)


@pytest.fixture
def count_only_req():
    return StepRequirement(
        step=THERMAL, display_name="Thermal", description="", min_evidence_count=2
    )


class TestEvidenceCount:
    def test_no_evidence_blocks_with_deficit(self, thermal_req):
        result = validate_step(THERMAL, [], thermal_req)

        assert not result.can_advance
        blocker = next(b for b in result.blockers if b.code == INSUFFICIENT_EVIDENCE)
        assert blocker.current == 0
        assert blocker.required == 3
        assert "3 more" in blocker.message

    def test_partial_evidence_reports_remaining_deficit(self, count_only_req):
        result = validate_step(THERMAL, [_asset()], count_only_req)

        assert result.blocker_codes() == [INSUFFICIENT_EVIDENCE]
        assert "1 more evidence item" in result.blockers[0].message

    def test_enough_evidence_passes(self, count_only_req):
        result = validate_step(THERMAL, [_asset(), _asset()], count_only_req)
        assert result.can_advance
        assert result.blockers == []

    def test_evidence_for_other_steps_is_ignored(self, count_only_req):
        other = [_asset(step=MethodologyStep.SOFT_METALS) for _ in range(5)]
        result = validate_step(THERMAL, other + [_asset()], count_only_req)
        assert result.blocker_codes() == [INSUFFICIENT_EVIDENCE]

    def test_zero_minimum_passes_with_no_evidence(self):
        req = StepRegistry().requirement_for(MethodologyStep.WEATHER_VERIFICATION)
        result = validate_step(MethodologyStep.WEATHER_VERIFICATION, [], req)
        assert result.can_advance


class TestAiValidation:
    def test_pending_analysis_does_not_satisfy(self, thermal_req):
        evidence = [_asset(), _asset(), _asset()]

        result = validate_step(THERMAL, evidence, thermal_req)

        assert result.blocker_codes() == [AI_VALIDATION_MISSING]
        assert "pending" in result.blockers[0].message
        assert set(result.blockers[0].evidence_ids) == {e.id for e in evidence}

    def test_invalid_verdicts_do_not_satisfy(self, thermal_req):
        evidence = [_asset(analysis=_invalid()) for _ in range(3)]

        result = validate_step(THERMAL, evidence, thermal_req)

        assert AI_VALIDATION_MISSING in result.blocker_codes()
        assert "pending" not in result.blockers[0].message
        assert EVIDENCE_JUDGED_INVALID in result.warning_codes()

    def test_one_positive_verdict_is_enough(self, thermal_req):
        evidence = [_asset(analysis=_valid()), _asset(), _asset(analysis=_invalid())]

        result = validate_step(THERMAL, evidence, thermal_req)

        assert result.can_advance

    def test_missing_ai_with_no_evidence_still_reported(self, thermal_req):
        result = validate_step(THERMAL, [], thermal_req)
        assert set(result.blocker_codes()) == {INSUFFICIENT_EVIDENCE, AI_VALIDATION_MISSING}

    def test_pending_analysis_on_non_ai_step_is_only_a_warning(self, count_only_req):
        result = validate_step(THERMAL, [_asset(), _asset()], count_only_req)
        assert result.can_advance
        assert ANALYSIS_PENDING in result.warning_codes()


class TestWarnings:
    def test_low_confidence_positive_warns_but_advances(self, thermal_req):
        evidence = [_asset(analysis=_valid(confidence=0.55)), _asset(), _asset()]

        result = validate_step(THERMAL, evidence, thermal_req)

        assert result.can_advance
        warning = next(w for w in result.warnings if w.code == LOW_AI_CONFIDENCE)
        assert warning.current == 0.55
        assert warning.required == 0.7

    def test_threshold_is_configurable(self, thermal_req):
        evidence = [_asset(analysis=_valid(confidence=0.8)) for _ in range(3)]

        default = validate_step(THERMAL, evidence, thermal_req)
        strict = validate_step(THERMAL, evidence, thermal_req, low_confidence_threshold=0.9)

        assert LOW_AI_CONFIDENCE not in default.warning_codes()
        assert LOW_AI_CONFIDENCE in strict.warning_codes()

    def test_low_confidence_negative_does_not_warn_about_confidence(self, thermal_req):
        low_negative = AIAnalysis(is_valid=False, confidence=0.1)
        evidence = [_asset(analysis=_valid()), _asset(analysis=low_negative), _asset()]

        result = validate_step(THERMAL, evidence, thermal_req)

        assert LOW_AI_CONFIDENCE not in result.warning_codes()

    def test_missing_geolocation_warns(self, count_only_req):
        result = validate_step(THERMAL, [_asset(geolocation=None), _asset()], count_only_req)

        warning = next(w for w in result.warnings if w.code == MISSING_GEOLOCATION)
        assert warning.message == "1 item(s) missing GPS location"


class TestCompletionPercentage:
    def test_nothing_captured(self, thermal_req):
        assert validate_step(THERMAL, [], thermal_req).completion_percentage == 0

    def test_enough_evidence_awaiting_verdict(self, thermal_req):
        result = validate_step(THERMAL, [_asset(), _asset(), _asset()], thermal_req)

        assert (result.checks_passed, result.checks_total) == (1, 2)
        assert result.completion_percentage == 50
        assert result.to_dict()["completion_percentage"] == 50

    def test_verdict_before_enough_evidence(self, thermal_req):
        result = validate_step(THERMAL, [_asset(analysis=_valid())], thermal_req)

        assert not result.can_advance
        assert result.completion_percentage == 50

    def test_all_checks_met(self, thermal_req):
        evidence = [_asset(analysis=_valid()), _asset(), _asset()]
        result = validate_step(THERMAL, evidence, thermal_req)

        assert result.can_advance
        assert result.completion_percentage == 100

    def test_count_only_step(self, count_only_req):
        assert validate_step(THERMAL, [_asset()], count_only_req).completion_percentage == 0
        assert validate_step(THERMAL, [_asset()] * 2, count_only_req).completion_percentage == 100

    def test_warnings_do_not_lower_percentage(self, count_only_req):
        evidence = [_asset(geolocation=None), _asset(analysis=_invalid())]
        result = validate_step(THERMAL, evidence, count_only_req)

        assert result.warnings
        assert result.completion_percentage == 100


class TestPurity:
    def test_same_inputs_same_result(self, thermal_req):
        evidence = [_asset(analysis=_valid(0.6)), _asset(geolocation=None)]

        first = validate_step(THERMAL, evidence, thermal_req)
        second = validate_step(THERMAL, evidence, thermal_req)

        assert first.to_dict() == second.to_dict()

    def test_mismatched_requirement_is_programmer_error(self):
        req = StepRegistry().requirement_for(MethodologyStep.SOFT_METALS)
        with pytest.raises(ValueError):
            validate_step(THERMAL, [], req)


class TestEvaluationFailed:
    def test_builds_blocked_result(self):
        result = evaluation_failed(THERMAL, RuntimeError("db down"))

        assert not result.can_advance
        assert result.blocker_codes() == [EVALUATION_FAILED]
        assert "RuntimeError" in result.blockers[0].message

    def test_to_dict_shape(self):
        payload = evaluation_failed(THERMAL, RuntimeError("x")).to_dict()
        assert payload["step"] == "thermal_imaging"
        assert payload["can_advance"] is False
        assert payload["blockers"][0]["code"] == EVALUATION_FAILED
        assert payload["completion_percentage"] == 0
