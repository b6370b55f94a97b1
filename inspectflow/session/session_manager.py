"""Session Manager / Advancement Controller.

This module owns the inspection state machine:

    active(step 0) --advance/skip--> active(step n) --...--> completed

``advance`` and ``skip`` each move the current step forward by exactly one
position. ``advance`` is gated by the Step Validator; ``skip`` is gated by the
registry's skip eligibility. Both write through an optimistic compare-and-swap
on the session version, so two mutations racing from the same version cannot
both succeed. A retried write re-evaluates only while the session is still on
the step the caller addressed; once another writer has moved it, the caller
gets ``ConcurrentModification``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from inspectflow.config import EngineConfig, SessionStatus
from inspectflow.errors import (
    ConcurrentModification,
    InvalidSkipReason,
    SessionAlreadyCompleted,
    SessionNotFound,
    SkipNotAllowed,
    ValidationBlocked,
)
from inspectflow.evidence.evidence_store import EvidenceStore
from inspectflow.evidence.models import EvidenceAsset, utc_now
from inspectflow.session.models import InspectionSession, SkipRecord
from inspectflow.storage.base import SessionRepository
from inspectflow.telemetry import operation_span
from inspectflow.workflow.completeness import CompletenessResult, score_session
from inspectflow.workflow.step_registry import (
    MethodologyStep,
    StepRegistry,
    get_step_registry,
)
from inspectflow.workflow.step_validator import (
    ValidationResult,
    evaluation_failed,
    validate_step,
)

logger = logging.getLogger(__name__)


@dataclass
class AdvanceOutcome:
    """Result of a successful advance or skip."""

    session: InspectionSession
    completeness: CompletenessResult
    validation: ValidationResult | None = None  # None for skips

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "session": self.session.to_dict(),
            "completeness": self.completeness.to_dict(),
        }
        if self.validation is not None:
            payload["warnings"] = [w.to_dict() for w in self.validation.warnings]
        return payload


@dataclass
class SessionSnapshot:
    """Read-only composite view of a session for clients."""

    session: InspectionSession
    evidence_by_step: dict[MethodologyStep, list[EvidenceAsset]] = field(default_factory=dict)
    completeness: CompletenessResult | None = None
    current_validation: ValidationResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "evidence_by_step": {
                step.value: [asset.to_dict() for asset in assets]
                for step, assets in self.evidence_by_step.items()
            },
            "completeness": self.completeness.to_dict() if self.completeness else None,
            "current_validation": (
                self.current_validation.to_dict() if self.current_validation else None
            ),
        }


class SessionManager:
    """Drives sessions through the methodology.

    Args:
        sessions: Session repository with compare-and-swap support.
        evidence: Evidence store, read for gating and snapshots.
        registry: Step registry (defaults to the global registry).
        config: Engine configuration (scoring policy, CAS retries).
    """

    def __init__(
        self,
        sessions: SessionRepository,
        evidence: EvidenceStore,
        registry: StepRegistry | None = None,
        config: EngineConfig | None = None,
    ):
        self.sessions = sessions
        self.evidence = evidence
        self.registry = registry or get_step_registry()
        self.config = config or EngineConfig()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_session(self, session_id: str) -> InspectionSession:
        """Load a session.

        Raises:
            SessionNotFound: If the session does not exist.
        """
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def get_or_create_active(self, property_id: str) -> InspectionSession:
        """Return the property's active session, creating one if needed.

        The repository's ``insert_active`` decides races atomically: if two
        callers create concurrently, both receive the same session.

        Raises:
            ValueError: If ``property_id`` is empty.
        """
        if not property_id or not property_id.strip():
            raise ValueError("property_id is required")

        existing = self.sessions.find_active_for_property(property_id)
        if existing is not None:
            return existing

        fresh = InspectionSession(property_id=property_id, current_step=self.registry.first_step())
        return self.sessions.insert_active(fresh)

    def score(
        self, session: InspectionSession, evidence: list[EvidenceAsset] | None = None
    ) -> CompletenessResult:
        return score_session(
            session,
            self.registry,
            skipped_credit=self.config.skipped_step_credit,
            evidence=evidence,
        )

    def preview(self, session_id: str) -> ValidationResult:
        """Evaluate the current step's gate without mutating anything.

        Uses exactly the evaluation ``advance`` applies.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionAlreadyCompleted: If the session has no open step.
        """
        session = self.get_session(session_id)
        self._require_active(session)
        return self._evaluate(session)

    def snapshot(self, session_id: str) -> SessionSnapshot:
        """Composite view of session, evidence, completeness and current gate."""
        session = self.get_session(session_id)

        evidence_by_step: dict[MethodologyStep, list[EvidenceAsset]] = {
            step: [] for step in self.registry.step_order()
        }
        evidence = self.evidence.list_for_session(session_id)
        for asset in evidence:
            evidence_by_step[asset.step].append(asset)

        current_validation = self._evaluate(session) if session.is_active else None

        return SessionSnapshot(
            session=session,
            evidence_by_step=evidence_by_step,
            completeness=self.score(session, evidence),
            current_validation=current_validation,
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def advance(self, session_id: str, expected_version: int | None = None) -> AdvanceOutcome:
        """Complete the current step and move to the next one.

        Args:
            session_id: Session to advance.
            expected_version: Optional version the caller last observed.

        Returns:
            AdvanceOutcome with the updated session and completeness.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionAlreadyCompleted: If the session is completed.
            ValidationBlocked: If the current step's requirements are unmet
                (or could not be evaluated). Nothing is mutated.
            ConcurrentModification: If the session changed underneath us and
                retries are exhausted or its current step moved.
        """
        with operation_span("advance", session_id=session_id) as span:
            attempt = 0
            target: InspectionSession | None = None
            while True:
                session = self.get_session(session_id)
                self._check_expected_version(session, expected_version)
                self._check_same_step(session, target)
                self._require_active(session)
                if target is None:
                    target = session

                step = session.current_step
                span.set_attribute("inspection.step", step.value)

                result = self._evaluate(session)
                if not result.can_advance:
                    logger.info(
                        f"Advance blocked for {session_id} at {step.value}: {result.blocker_codes()}"
                    )
                    raise ValidationBlocked(result)

                updated = self._move_forward(session)
                if self.sessions.compare_and_swap(updated, session.version):
                    break
                attempt = self._on_conflict(session, attempt)

            logger.info(
                f"Session {session_id} completed {step.value} "
                f"(now at {updated.current_step.value if updated.current_step else 'done'})"
            )
            return AdvanceOutcome(session=updated, completeness=self.score(updated), validation=result)

    def skip(
        self, session_id: str, reason: str, expected_version: int | None = None
    ) -> AdvanceOutcome:
        """Skip the current step with an audited reason.

        Args:
            session_id: Session whose current step to skip.
            reason: One of the step's allowed skip reasons.
            expected_version: Optional version the caller last observed.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionAlreadyCompleted: If the session is completed.
            SkipNotAllowed: If the current step may not be skipped.
            InvalidSkipReason: If ``reason`` is not an allowed reason.
            ConcurrentModification: If the session changed underneath us and
                retries are exhausted or its current step moved.
        """
        with operation_span("skip", session_id=session_id) as span:
            attempt = 0
            target: InspectionSession | None = None
            while True:
                session = self.get_session(session_id)
                self._check_expected_version(session, expected_version)
                self._check_same_step(session, target)
                self._require_active(session)
                if target is None:
                    target = session

                step = session.current_step
                span.set_attribute("inspection.step", step.value)

                requirement = self.registry.requirement_for(step)
                if not requirement.can_skip:
                    raise SkipNotAllowed(step.value)
                if reason not in requirement.skip_reasons:
                    raise InvalidSkipReason(step.value, reason, requirement.skip_reasons)

                updated = self._move_forward(session, skip_reason=reason)
                if self.sessions.compare_and_swap(updated, session.version):
                    break
                attempt = self._on_conflict(session, attempt)

            logger.info(f"Session {session_id} skipped {step.value}: {reason}")
            return AdvanceOutcome(session=updated, completeness=self.score(updated))

    # =========================================================================
    # Internals
    # =========================================================================

    def _evaluate(self, session: InspectionSession) -> ValidationResult:
        """Run the gate for the current step, failing closed on any error."""
        step = session.current_step
        try:
            requirement = self.registry.requirement_for(step)
            evidence = self.evidence.list_for_step(session.id, step)
            return validate_step(
                step,
                evidence,
                requirement,
                low_confidence_threshold=self.config.low_confidence_threshold,
            )
        except Exception as e:
            logger.error(
                f"Could not evaluate {step.value} for session {session.id}: {e}",
                exc_info=True,
            )
            return evaluation_failed(step, e)

    def _move_forward(
        self, session: InspectionSession, skip_reason: str | None = None
    ) -> InspectionSession:
        """Return a copy of the session with the current step resolved."""
        now = utc_now()
        step = session.current_step
        updated = session.model_copy(deep=True)

        if skip_reason is None:
            updated.completed_steps.append(step)
        else:
            updated.skipped.append(SkipRecord(step=step, reason=skip_reason, skipped_at=now))

        updated.current_step = self.registry.next_step(step)
        if updated.current_step is None:
            updated.status = SessionStatus.COMPLETED
            updated.completed_at = now

        updated.last_activity_at = now
        updated.version = session.version + 1
        return updated

    def _on_conflict(self, session: InspectionSession, attempt: int) -> int:
        """Handle a failed compare-and-swap; returns the next attempt number."""
        if attempt >= self.config.cas_retry_limit:
            current = self.sessions.get(session.id)
            raise ConcurrentModification(
                session.id, session.version, current.version if current else None
            )
        logger.info(
            f"Version conflict on session {session.id} at v{session.version}, "
            f"retrying ({attempt + 1}/{self.config.cas_retry_limit})"
        )
        return attempt + 1

    @staticmethod
    def _check_expected_version(session: InspectionSession, expected_version: int | None) -> None:
        if expected_version is not None and session.version != expected_version:
            raise ConcurrentModification(session.id, expected_version, session.version)

    @staticmethod
    def _check_same_step(session: InspectionSession, target: InspectionSession | None) -> None:
        """A retry may only re-evaluate the step the caller originally addressed."""
        if target is not None and session.current_step is not target.current_step:
            raise ConcurrentModification(session.id, target.version, session.version)

    @staticmethod
    def _require_active(session: InspectionSession) -> None:
        if not session.is_active or session.current_step is None:
            raise SessionAlreadyCompleted(session.id)
