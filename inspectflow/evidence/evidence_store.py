"""Evidence Store: attaches evidence to sessions and records AI verdicts.

The store reads the session only to check that the target step is the one
currently open. That read may be slightly stale; the worst case is a
rejected attach the client retries.
"""

import logging
from datetime import datetime

from inspectflow.config import AssetKind
from inspectflow.errors import (
    EvidenceNotFound,
    SessionAlreadyCompleted,
    SessionNotFound,
    StepNotOpen,
)
from inspectflow.evidence.analysis import AnalysisDispatcher
from inspectflow.evidence.models import AIAnalysis, EvidenceAsset, GeoLocation, utc_now
from inspectflow.storage.base import EvidenceRepository, SessionRepository
from inspectflow.telemetry import operation_span
from inspectflow.workflow.step_registry import MethodologyStep

logger = logging.getLogger(__name__)


class EvidenceStore:
    """Holds evidence records and their (possibly pending) analyses.

    Args:
        sessions: Session repository, read for attach preconditions.
        evidence: Evidence repository.
        dispatcher: Optional analysis dispatcher. When absent, analyses only
            arrive through ``record_analysis`` callbacks.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        evidence: EvidenceRepository,
        dispatcher: AnalysisDispatcher | None = None,
    ) -> None:
        self.sessions = sessions
        self.evidence = evidence
        self.dispatcher = dispatcher

    def attach(
        self,
        session_id: str,
        step: MethodologyStep,
        kind: AssetKind,
        content_ref: str,
        geolocation: GeoLocation | None = None,
        captured_at: datetime | None = None,
    ) -> EvidenceAsset:
        """Attach a new piece of evidence to the session's current step.

        Args:
            session_id: Owning session.
            step: Step the evidence was captured for; must be the current step.
            kind: Asset kind.
            content_ref: Opaque reference to the captured content.
            geolocation: Optional capture location.
            captured_at: Capture time (defaults to now).

        Returns:
            The stored record, with analysis pending.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionAlreadyCompleted: If the session is completed.
            StepNotOpen: If ``step`` is not the session's current step.
        """
        with operation_span(
            "evidence.attach", session_id=session_id, **{"inspection.step": step.value}
        ) as span:
            session = self.sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if not session.is_active:
                raise SessionAlreadyCompleted(session_id)
            if session.current_step is not step:
                current = session.current_step.value if session.current_step else None
                raise StepNotOpen(step.value, current)

            asset = EvidenceAsset(
                session_id=session_id,
                step=step,
                kind=kind,
                content_ref=content_ref,
                geolocation=geolocation,
                captured_at=captured_at or utc_now(),
            )
            self.evidence.insert(asset)
            span.set_attribute("evidence.id", asset.id)
            logger.info(f"Attached {kind.value} evidence {asset.id} to {session_id}/{step.value}")

        self._dispatch(asset)
        return asset

    def record_analysis(self, evidence_id: str, analysis: AIAnalysis) -> EvidenceAsset:
        """Store the provider's verdict on an evidence record.

        Idempotent: recording the same verdict twice leaves the record as if
        it had been recorded once. A later verdict replaces an earlier one.
        Accepted even after the session has completed.

        Raises:
            EvidenceNotFound: If the evidence id is unknown.
        """
        with operation_span("evidence.analysis_result", **{"evidence.id": evidence_id}):
            asset = self.evidence.get(evidence_id)
            if asset is None:
                raise EvidenceNotFound(evidence_id)

            if asset.analysis == analysis:
                logger.debug(f"Analysis for evidence {evidence_id} already recorded")
                return asset

            asset.analysis = analysis
            asset.analyzed_at = utc_now()
            self.evidence.save(asset)
            logger.info(
                f"Recorded analysis for evidence {evidence_id}: "
                f"valid={analysis.is_valid}, confidence={analysis.confidence:.2f}"
            )
            return asset

    def request_analysis(self, evidence_id: str) -> EvidenceAsset:
        """Ask the provider to (re)analyze an existing record without waiting.

        Raises:
            EvidenceNotFound: If the evidence id is unknown.
        """
        asset = self.evidence.get(evidence_id)
        if asset is None:
            raise EvidenceNotFound(evidence_id)
        if self.dispatcher is None:
            logger.warning(f"Analysis requested for {evidence_id} but no provider is configured")
        self._dispatch(asset)
        return asset

    def get(self, evidence_id: str) -> EvidenceAsset:
        asset = self.evidence.get(evidence_id)
        if asset is None:
            raise EvidenceNotFound(evidence_id)
        return asset

    def list_for_step(self, session_id: str, step: MethodologyStep) -> list[EvidenceAsset]:
        return self.evidence.list_for_step(session_id, step)

    def list_for_session(self, session_id: str) -> list[EvidenceAsset]:
        return self.evidence.list_for_session(session_id)

    def _dispatch(self, asset: EvidenceAsset) -> None:
        if self.dispatcher is not None:
            self.dispatcher.submit(asset, self.record_analysis)
