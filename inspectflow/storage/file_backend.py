"""JSON-file repositories for single-process deployments and the CLI.

Layout under the data directory::

    sessions/<session_id>.json
    active_sessions.json            # property_id -> active session_id
    evidence/<session_id>/<evidence_id>.json

Session writes hold a threading.Lock for the read-compare-write sequence and
land via an atomic rename, so readers never observe a half-written file.
The lock is per process; running several writer processes against one data
directory is not supported.
"""

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path

from inspectflow.evidence.models import EvidenceAsset
from inspectflow.session.models import InspectionSession
from inspectflow.storage.base import EvidenceRepository, SessionRepository

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def _is_safe_id(value: str) -> bool:
    return bool(_SAFE_ID.match(value))


def _atomic_write(path: Path, content: str) -> None:
    """Write content to path via a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileSessionRepository(SessionRepository):
    """Stores each session as a JSON document.

    Args:
        data_dir: Root directory for persisted state.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _session_file(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def _read_session(self, session_id: str) -> InspectionSession | None:
        """Read a session from disk. Caller must hold self._lock."""
        if not _is_safe_id(session_id):
            return None
        session_file = self._session_file(session_id)
        if not session_file.exists():
            return None
        return InspectionSession.model_validate_json(session_file.read_text(encoding="utf-8"))

    def _write_session(self, session: InspectionSession) -> None:
        """Write a session to disk. Caller must hold self._lock."""
        _atomic_write(self._session_file(session.id), session.model_dump_json(indent=2))

    def _read_active_index(self) -> dict[str, str]:
        """Read the property -> active session index. Caller must hold self._lock."""
        index_file = self.data_dir / "active_sessions.json"
        if not index_file.exists():
            return {}
        try:
            return json.loads(index_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Corrupted active_sessions.json, rebuilding from session files")
            return self._rebuild_active_index()

    def _write_active_index(self, index: dict[str, str]) -> None:
        """Write the active index. Caller must hold self._lock."""
        _atomic_write(self.data_dir / "active_sessions.json", json.dumps(index, indent=2))

    def _rebuild_active_index(self) -> dict[str, str]:
        index: dict[str, str] = {}
        for session_file in sorted(self.sessions_dir.glob("*.json")):
            session = InspectionSession.model_validate_json(session_file.read_text(encoding="utf-8"))
            if session.is_active:
                index[session.property_id] = session.id
        self._write_active_index(index)
        return index

    def get(self, session_id: str) -> InspectionSession | None:
        with self._lock:
            return self._read_session(session_id)

    def find_active_for_property(self, property_id: str) -> InspectionSession | None:
        with self._lock:
            session_id = self._read_active_index().get(property_id)
            if session_id is None:
                return None
            return self._read_session(session_id)

    def insert_active(self, session: InspectionSession) -> InspectionSession:
        if not _is_safe_id(session.id):
            raise ValueError(f"Session id {session.id!r} is not safe for file storage")
        with self._lock:
            index = self._read_active_index()
            existing_id = index.get(session.property_id)
            if existing_id is not None:
                existing = self._read_session(existing_id)
                if existing is not None and existing.is_active:
                    return existing
            self._write_session(session)
            index[session.property_id] = session.id
            self._write_active_index(index)
        logger.info(f"Created session {session.id} for property {session.property_id}")
        return session

    def compare_and_swap(self, session: InspectionSession, expected_version: int) -> bool:
        with self._lock:
            stored = self._read_session(session.id)
            if stored is None or stored.version != expected_version:
                return False
            self._write_session(session)
            if not session.is_active:
                index = self._read_active_index()
                if index.get(session.property_id) == session.id:
                    del index[session.property_id]
                    self._write_active_index(index)
            return True


class FileEvidenceRepository(EvidenceRepository):
    """Stores each evidence record as its own JSON document.

    Inserts for different records touch different files, so parallel
    attaches only contend on the short lock around each write.
    """

    def __init__(self, data_dir: Path) -> None:
        self.evidence_dir = Path(data_dir) / "evidence"
        self.evidence_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _asset_file(self, asset: EvidenceAsset) -> Path:
        return self.evidence_dir / asset.session_id / f"{asset.id}.json"

    def _find_file(self, evidence_id: str) -> Path | None:
        if not _is_safe_id(evidence_id):
            return None
        matches = list(self.evidence_dir.glob(f"*/{evidence_id}.json"))
        return matches[0] if matches else None

    def insert(self, asset: EvidenceAsset) -> EvidenceAsset:
        if not (_is_safe_id(asset.id) and _is_safe_id(asset.session_id)):
            raise ValueError(f"Evidence id {asset.id!r} is not safe for file storage")
        asset_file = self._asset_file(asset)
        with self._lock:
            if asset_file.exists():
                raise ValueError(f"Evidence {asset.id} already exists")
            _atomic_write(asset_file, asset.model_dump_json(indent=2))
        return asset

    def get(self, evidence_id: str) -> EvidenceAsset | None:
        with self._lock:
            asset_file = self._find_file(evidence_id)
            if asset_file is None:
                return None
            return EvidenceAsset.model_validate_json(asset_file.read_text(encoding="utf-8"))

    def save(self, asset: EvidenceAsset) -> EvidenceAsset:
        asset_file = self._asset_file(asset)
        with self._lock:
            if not asset_file.exists():
                raise KeyError(asset.id)
            _atomic_write(asset_file, asset.model_dump_json(indent=2))
        return asset

    def list_for_session(self, session_id: str) -> list[EvidenceAsset]:
        if not _is_safe_id(session_id):
            return []
        session_dir = self.evidence_dir / session_id
        with self._lock:
            if not session_dir.exists():
                return []
            assets = [
                EvidenceAsset.model_validate_json(f.read_text(encoding="utf-8"))
                for f in session_dir.glob("*.json")
            ]
        return sorted(assets, key=lambda a: (a.captured_at, a.id))
