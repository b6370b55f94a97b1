"""Completeness Scorer.

Summarizes protocol adherence for a session as a 0-100 score. Completed
steps earn full credit, skipped steps a fixed partial credit, pending steps
nothing. Always recomputed from the session; never cached.

When the session's evidence is supplied, the result also carries a per-step
evidence summary and plain-language recommendations for the inspector. The
evidence never changes the score.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from inspectflow.config import (
    MANDATORY_FOCUS_SCORE,
    READY_FOR_REPORT_SCORE,
    RECOMMENDED_STEPS_SHOWN,
    SKIPPED_STEP_CREDIT,
    CompletenessBand,
    StepStatus,
    band_for_score,
)
from inspectflow.evidence.models import EvidenceAsset
from inspectflow.session.models import InspectionSession
from inspectflow.workflow.step_registry import MethodologyStep, StepRegistry

_CREDIT_BY_STATUS = {
    StepStatus.COMPLETED: 1.0,
    StepStatus.PENDING: 0.0,
}


@dataclass(frozen=True)
class StepEvidenceSummary:
    """Evidence captured for one step against what the step requires."""

    evidence_count: int
    required_count: int
    ai_validated: bool

    @property
    def missing_count(self) -> int:
        return max(0, self.required_count - self.evidence_count)

    def to_dict(self) -> dict[str, Any]:
        return {
            "evidence_count": self.evidence_count,
            "required_count": self.required_count,
            "ai_validated": self.ai_validated,
        }


@dataclass
class CompletenessResult:
    score: int
    step_statuses: dict[MethodologyStep, StepStatus] = field(default_factory=dict)
    band: CompletenessBand = CompletenessBand.INCOMPLETE
    ready_for_report: bool = False
    # Empty unless the session's evidence was scored alongside it
    step_evidence: dict[MethodologyStep, StepEvidenceSummary] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)

    def count(self, status: StepStatus) -> int:
        return sum(1 for s in self.step_statuses.values() if s is status)

    @property
    def completed_count(self) -> int:
        return self.count(StepStatus.COMPLETED)

    @property
    def skipped_count(self) -> int:
        return self.count(StepStatus.SKIPPED)

    @property
    def pending_count(self) -> int:
        return self.count(StepStatus.PENDING)

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "score": self.score,
            "band": self.band.value,
            "ready_for_report": self.ready_for_report,
            "step_statuses": {step.value: status.value for step, status in self.step_statuses.items()},
            "completed_count": self.completed_count,
            "skipped_count": self.skipped_count,
            "pending_count": self.pending_count,
        }
        if self.step_evidence:
            payload["step_evidence"] = {
                step.value: summary.to_dict() for step, summary in self.step_evidence.items()
            }
            payload["recommendations"] = list(self.recommendations)
        return payload


def score_session(
    session: InspectionSession,
    registry: StepRegistry,
    *,
    skipped_credit: float = SKIPPED_STEP_CREDIT,
    evidence: Iterable[EvidenceAsset] | None = None,
) -> CompletenessResult:
    """Compute the completeness score for a session.

    Args:
        session: The session to summarize.
        registry: Registry providing the step order.
        skipped_credit: Fraction of full credit awarded to a skipped step.
        evidence: The session's evidence. When given, the result includes
            per-step evidence summaries and recommendations.

    Returns:
        CompletenessResult with the score and per-step statuses.

    Raises:
        ValueError: If ``skipped_credit`` is outside [0, 1].
    """
    if not 0.0 <= skipped_credit <= 1.0:
        raise ValueError(f"skipped_credit must be within [0, 1], got {skipped_credit}")

    steps = registry.step_order()
    statuses = {step: session.step_status(step) for step in steps}
    credit = {**_CREDIT_BY_STATUS, StepStatus.SKIPPED: skipped_credit}

    total = Decimal(str(sum(credit[status] for status in statuses.values())))
    raw = total / Decimal(len(steps)) * 100
    score = int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    score = max(0, min(100, score))

    result = CompletenessResult(
        score=score,
        step_statuses=statuses,
        band=band_for_score(score),
        ready_for_report=score >= READY_FOR_REPORT_SCORE,
    )
    if evidence is not None:
        result.step_evidence = summarize_evidence(evidence, registry)
        result.recommendations = build_recommendations(result, registry)
    return result


def summarize_evidence(
    evidence: Iterable[EvidenceAsset], registry: StepRegistry
) -> dict[MethodologyStep, StepEvidenceSummary]:
    """Count each step's evidence and note whether any of it was judged valid."""
    by_step: dict[MethodologyStep, list[EvidenceAsset]] = {
        step: [] for step in registry.step_order()
    }
    for asset in evidence:
        if asset.step in by_step:
            by_step[asset.step].append(asset)

    return {
        step: StepEvidenceSummary(
            evidence_count=len(assets),
            required_count=registry.requirement_for(step).min_evidence_count,
            ai_validated=any(a.has_positive_analysis for a in assets),
        )
        for step, assets in by_step.items()
    }


def build_recommendations(result: CompletenessResult, registry: StepRegistry) -> list[str]:
    """Next actions that would raise the session's completeness or report quality."""
    recommendations: list[str] = []
    pending = [s for s, status in result.step_statuses.items() if status is StepStatus.PENDING]

    if pending:
        names = [registry.requirement_for(s).display_name for s in pending[:RECOMMENDED_STEPS_SHOWN]]
        recommendations.append(f"Complete the following steps: {', '.join(names)}")

    # Skipped steps need no further evidence
    short = [s for s in pending if result.step_evidence[s].missing_count > 0]
    if short:
        needed = sum(result.step_evidence[s].missing_count for s in short)
        recommendations.append(
            f"Capture {needed} more evidence item{'s' if needed != 1 else ''} "
            f"across {len(short)} step{'s' if len(short) != 1 else ''}"
        )

    unvalidated = [
        s
        for s, status in result.step_statuses.items()
        if status is StepStatus.COMPLETED and not result.step_evidence[s].ai_validated
    ]
    if unvalidated:
        recommendations.append(
            "Request AI validation for completed steps to improve report quality"
        )

    if result.score < MANDATORY_FOCUS_SCORE:
        mandatory = [
            registry.requirement_for(s).display_name
            for s in pending
            if not registry.requirement_for(s).can_skip
        ]
        if mandatory:
            recommendations.append(f"Focus on the mandatory steps first: {', '.join(mandatory)}")

    return recommendations
