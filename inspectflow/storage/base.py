"""Repository interfaces for sessions and evidence.

Implementations must provide an atomic compare-and-swap on the session
version and an atomic "insert unless an active session already exists for
this property". Returned records are copies: callers may mutate them freely
without affecting stored state until they write them back.
"""

from abc import ABC, abstractmethod

from inspectflow.evidence.models import EvidenceAsset
from inspectflow.session.models import InspectionSession
from inspectflow.workflow.step_registry import MethodologyStep


class SessionRepository(ABC):
    """Durable store of inspection sessions."""

    @abstractmethod
    def get(self, session_id: str) -> InspectionSession | None:
        """Load a session by id, or None if it does not exist."""

    @abstractmethod
    def find_active_for_property(self, property_id: str) -> InspectionSession | None:
        """Return the active session for a property, if any."""

    @abstractmethod
    def insert_active(self, session: InspectionSession) -> InspectionSession:
        """Insert a new active session unless the property already has one.

        Returns:
            The stored active session: ``session`` if it was inserted, or the
            session that already held the property's active slot.
        """

    @abstractmethod
    def compare_and_swap(self, session: InspectionSession, expected_version: int) -> bool:
        """Replace the stored session only if its version is still ``expected_version``.

        Returns:
            True if the write happened, False on a version conflict.
        """


class EvidenceRepository(ABC):
    """Durable store of evidence records."""

    @abstractmethod
    def insert(self, asset: EvidenceAsset) -> EvidenceAsset:
        """Persist a new evidence record."""

    @abstractmethod
    def get(self, evidence_id: str) -> EvidenceAsset | None:
        """Load an evidence record by id, or None if it does not exist."""

    @abstractmethod
    def save(self, asset: EvidenceAsset) -> EvidenceAsset:
        """Overwrite an existing evidence record."""

    @abstractmethod
    def list_for_session(self, session_id: str) -> list[EvidenceAsset]:
        """All evidence for a session, in capture order."""

    def list_for_step(self, session_id: str, step: MethodologyStep) -> list[EvidenceAsset]:
        return [a for a in self.list_for_session(session_id) if a.step is step]
