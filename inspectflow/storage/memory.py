"""In-process repositories guarded by a threading.Lock."""

import logging
import threading

from inspectflow.evidence.models import EvidenceAsset
from inspectflow.session.models import InspectionSession
from inspectflow.storage.base import EvidenceRepository, SessionRepository

logger = logging.getLogger(__name__)


class InMemorySessionRepository(SessionRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, InspectionSession] = {}
        self._active_by_property: dict[str, str] = {}

    def get(self, session_id: str) -> InspectionSession | None:
        with self._lock:
            stored = self._sessions.get(session_id)
            return stored.model_copy(deep=True) if stored else None

    def find_active_for_property(self, property_id: str) -> InspectionSession | None:
        with self._lock:
            session_id = self._active_by_property.get(property_id)
            if session_id is None:
                return None
            return self._sessions[session_id].model_copy(deep=True)

    def insert_active(self, session: InspectionSession) -> InspectionSession:
        with self._lock:
            existing_id = self._active_by_property.get(session.property_id)
            if existing_id is not None:
                return self._sessions[existing_id].model_copy(deep=True)
            self._sessions[session.id] = session.model_copy(deep=True)
            self._active_by_property[session.property_id] = session.id
            logger.info(f"Created session {session.id} for property {session.property_id}")
            return session.model_copy(deep=True)

    def compare_and_swap(self, session: InspectionSession, expected_version: int) -> bool:
        with self._lock:
            stored = self._sessions.get(session.id)
            if stored is None or stored.version != expected_version:
                return False
            self._sessions[session.id] = session.model_copy(deep=True)
            if not session.is_active and self._active_by_property.get(session.property_id) == session.id:
                del self._active_by_property[session.property_id]
            return True


class InMemoryEvidenceRepository(EvidenceRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._assets: dict[str, EvidenceAsset] = {}

    def insert(self, asset: EvidenceAsset) -> EvidenceAsset:
        with self._lock:
            if asset.id in self._assets:
                raise ValueError(f"Evidence {asset.id} already exists")
            self._assets[asset.id] = asset.model_copy(deep=True)
        return asset

    def get(self, evidence_id: str) -> EvidenceAsset | None:
        with self._lock:
            stored = self._assets.get(evidence_id)
            return stored.model_copy(deep=True) if stored else None

    def save(self, asset: EvidenceAsset) -> EvidenceAsset:
        with self._lock:
            if asset.id not in self._assets:
                raise KeyError(asset.id)
            self._assets[asset.id] = asset.model_copy(deep=True)
        return asset

    def list_for_session(self, session_id: str) -> list[EvidenceAsset]:
        with self._lock:
            # dicts preserve insertion order, which is capture order
            return [a.model_copy(deep=True) for a in self._assets.values() if a.session_id == session_id]
