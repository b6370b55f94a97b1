"""Step Validator: decides whether the current step may be completed.

``validate_step`` is a pure function of (step, evidence, requirement). The
preview shown to clients and the gate applied by ``advance`` both call it,
so the two can never disagree.

Blockers (hard, prevent advance):
- INSUFFICIENT_EVIDENCE: fewer evidence records than the step requires
- AI_VALIDATION_MISSING: the step needs a positive AI judgment and has none
- EVALUATION_FAILED: the gate itself could not be evaluated (set by the caller)

Warnings (soft, informational):
- LOW_AI_CONFIDENCE: a positive judgment below the confidence threshold
- EVIDENCE_JUDGED_INVALID: evidence the provider marked as not valid
- MISSING_GEOLOCATION: evidence captured without a location
- ANALYSIS_PENDING: analyses still outstanding on a step that does not need them

The result also reports ``completion_percentage``, the share of the step's
gating checks (evidence count, plus AI validation where required) already met.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from inspectflow.config import LOW_CONFIDENCE_THRESHOLD
from inspectflow.evidence.models import EvidenceAsset
from inspectflow.workflow.step_registry import MethodologyStep, StepRequirement

logger = logging.getLogger(__name__)

# Blocker codes
INSUFFICIENT_EVIDENCE = "INSUFFICIENT_EVIDENCE"
AI_VALIDATION_MISSING = "AI_VALIDATION_MISSING"
EVALUATION_FAILED = "EVALUATION_FAILED"

# Warning codes
LOW_AI_CONFIDENCE = "LOW_AI_CONFIDENCE"
EVIDENCE_JUDGED_INVALID = "EVIDENCE_JUDGED_INVALID"
MISSING_GEOLOCATION = "MISSING_GEOLOCATION"
ANALYSIS_PENDING = "ANALYSIS_PENDING"


@dataclass(frozen=True)
class ValidationIssue:
    """A single blocker or warning raised by the validator."""

    code: str
    message: str
    current: int | float | None = None
    required: int | float | None = None
    evidence_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.current is not None:
            payload["current"] = self.current
        if self.required is not None:
            payload["required"] = self.required
        if self.evidence_ids:
            payload["evidence_ids"] = list(self.evidence_ids)
        return payload


@dataclass
class ValidationResult:
    """Outcome of validating one step against its evidence.

    Ephemeral: computed on demand and never persisted.
    """

    step: MethodologyStep
    blockers: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    checks_total: int = 0
    checks_passed: int = 0

    @property
    def can_advance(self) -> bool:
        return not self.blockers

    @property
    def completion_percentage(self) -> int:
        """Share of the step's gating checks already met, 0-100."""
        if self.checks_total == 0:
            return 100
        return round(100 * self.checks_passed / self.checks_total)

    def blocker_codes(self) -> list[str]:
        return [b.code for b in self.blockers]

    def warning_codes(self) -> list[str]:
        return [w.code for w in self.warnings]

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "can_advance": self.can_advance,
            "completion_percentage": self.completion_percentage,
            "blockers": [b.to_dict() for b in self.blockers],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def validate_step(
    step: MethodologyStep,
    evidence: list[EvidenceAsset],
    requirement: StepRequirement,
    *,
    low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> ValidationResult:
    """Check a step's evidence against its requirement.

    Args:
        step: The step being validated.
        evidence: Evidence records for the session. Records attributed to
            other steps are ignored.
        requirement: The step's requirement from the registry.
        low_confidence_threshold: Positive judgments below this confidence
            produce a LOW_AI_CONFIDENCE warning.

    Returns:
        ValidationResult with blockers and warnings.

    Raises:
        ValueError: If the requirement belongs to a different step.
    """
    if requirement.step is not step:
        raise ValueError(
            f"Requirement for {requirement.step.value} cannot validate step {step.value}"
        )

    result = ValidationResult(step=step)
    step_evidence = [e for e in evidence if e.step is step]
    count = len(step_evidence)
    pending = [e for e in step_evidence if e.analysis_pending]

    # Rule 1: evidence count
    result.checks_total += 1
    if count >= requirement.min_evidence_count:
        result.checks_passed += 1
    else:
        deficit = requirement.min_evidence_count - count
        noun = "item" if deficit == 1 else "items"
        result.blockers.append(
            ValidationIssue(
                code=INSUFFICIENT_EVIDENCE,
                message=(
                    f"Need {deficit} more evidence {noun} "
                    f"({count} of {requirement.min_evidence_count} captured)"
                ),
                current=count,
                required=requirement.min_evidence_count,
            )
        )

    # Rule 2: at least one positive AI judgment
    if requirement.ai_validation_required:
        result.checks_total += 1
        if any(e.has_positive_analysis for e in step_evidence):
            result.checks_passed += 1
        else:
            if pending:
                message = (
                    "AI validation required - no evidence has been confirmed yet; "
                    f"{len(pending)} analysis result(s) may still be pending"
                )
            elif step_evidence:
                message = "AI validation required - no evidence was judged valid; capture more"
            else:
                message = "AI validation required - capture evidence and analyze your photos"
            result.blockers.append(
                ValidationIssue(
                    code=AI_VALIDATION_MISSING,
                    message=message,
                    current=0,
                    required=1,
                    evidence_ids=tuple(e.id for e in pending),
                )
            )
    elif pending:
        result.warnings.append(
            ValidationIssue(
                code=ANALYSIS_PENDING,
                message=f"{len(pending)} analysis result(s) still pending",
                current=len(pending),
                evidence_ids=tuple(e.id for e in pending),
            )
        )

    # Rule 3: low-confidence positives
    low_confidence = [
        e
        for e in step_evidence
        if e.has_positive_analysis and e.analysis.confidence < low_confidence_threshold
    ]
    if low_confidence:
        result.warnings.append(
            ValidationIssue(
                code=LOW_AI_CONFIDENCE,
                message=(
                    f"{len(low_confidence)} item(s) validated with confidence below "
                    f"{low_confidence_threshold:.0%}"
                ),
                current=min(e.analysis.confidence for e in low_confidence),
                required=low_confidence_threshold,
                evidence_ids=tuple(e.id for e in low_confidence),
            )
        )

    invalid = [e for e in step_evidence if e.analysis is not None and not e.analysis.is_valid]
    if invalid:
        result.warnings.append(
            ValidationIssue(
                code=EVIDENCE_JUDGED_INVALID,
                message=f"{len(invalid)} item(s) were judged invalid by AI analysis",
                current=len(invalid),
                evidence_ids=tuple(e.id for e in invalid),
            )
        )

    no_location = [e for e in step_evidence if e.geolocation is None]
    if no_location:
        result.warnings.append(
            ValidationIssue(
                code=MISSING_GEOLOCATION,
                message=f"{len(no_location)} item(s) missing GPS location",
                current=len(no_location),
                evidence_ids=tuple(e.id for e in no_location),
            )
        )

    logger.debug(
        f"Validated {step.value}: evidence={count}, "
        f"blockers={result.blocker_codes()}, warnings={result.warning_codes()}"
    )
    return result


def evaluation_failed(step: MethodologyStep, error: Exception) -> ValidationResult:
    """Build the blocked result used when the gate itself could not be evaluated."""
    return ValidationResult(
        step=step,
        blockers=[
            ValidationIssue(
                code=EVALUATION_FAILED,
                message=f"Step requirements could not be evaluated: {type(error).__name__}",
            )
        ],
        checks_total=1,
    )
