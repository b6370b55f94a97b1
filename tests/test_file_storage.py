"""Tests for the JSON-file repositories."""

import json

import pytest

from inspectflow.config import AssetKind, SessionStatus
from inspectflow.evidence.evidence_store import EvidenceStore
from inspectflow.evidence.models import AIAnalysis, EvidenceAsset, GeoLocation
from inspectflow.session.models import InspectionSession
from inspectflow.session.session_manager import SessionManager
from inspectflow.storage.file_backend import FileEvidenceRepository, FileSessionRepository
from inspectflow.workflow.step_registry import MethodologyStep

ROOFTOP = GeoLocation(latitude=35.4676, longitude=-97.5164)


@pytest.fixture
def session_repo(tmp_path):
    return FileSessionRepository(tmp_path)


@pytest.fixture
def evidence_repo(tmp_path):
    return FileEvidenceRepository(tmp_path)


class TestFileSessionRepository:
    def test_insert_and_get(self, session_repo, tmp_path):
        session = InspectionSession(property_id="P-1")

        stored = session_repo.insert_active(session)

        assert stored == session
        assert session_repo.get(session.id) == session
        assert (tmp_path / "sessions" / f"{session.id}.json").exists()
        index = json.loads((tmp_path / "active_sessions.json").read_text())
        assert index == {"P-1": session.id}

    def test_insert_returns_existing_active(self, session_repo):
        first = session_repo.insert_active(InspectionSession(property_id="P-1"))
        second = session_repo.insert_active(InspectionSession(property_id="P-1"))
        assert second.id == first.id

    def test_get_missing(self, session_repo):
        assert session_repo.get("does-not-exist") is None

    def test_path_traversal_ids_are_not_found(self, session_repo):
        assert session_repo.get("../../etc/passwd") is None

    def test_compare_and_swap(self, session_repo):
        session = session_repo.insert_active(InspectionSession(property_id="P-1"))
        updated = session.model_copy(update={"version": 2})

        assert session_repo.compare_and_swap(updated, expected_version=1)
        assert not session_repo.compare_and_swap(updated, expected_version=1)
        assert session_repo.get(session.id).version == 2

    def test_completion_releases_active_slot(self, session_repo):
        session = session_repo.insert_active(InspectionSession(property_id="P-1"))
        done = session.model_copy(
            update={"version": 2, "status": SessionStatus.COMPLETED, "current_step": None}
        )

        session_repo.compare_and_swap(done, expected_version=1)

        assert session_repo.find_active_for_property("P-1") is None
        assert session_repo.insert_active(InspectionSession(property_id="P-1")).id != session.id

    def test_corrupted_index_is_rebuilt(self, session_repo, tmp_path):
        session = session_repo.insert_active(InspectionSession(property_id="P-1"))
        (tmp_path / "active_sessions.json").write_text("{not json")

        found = session_repo.find_active_for_property("P-1")

        assert found.id == session.id
        assert json.loads((tmp_path / "active_sessions.json").read_text()) == {"P-1": session.id}

    def test_state_survives_new_repository_instance(self, session_repo, tmp_path):
        session = session_repo.insert_active(InspectionSession(property_id="P-1"))
        reopened = FileSessionRepository(tmp_path)
        assert reopened.find_active_for_property("P-1") == session


class TestFileEvidenceRepository:
    def _asset(self, session_id="s-1", **kwargs):
        return EvidenceAsset(
            session_id=session_id,
            step=MethodologyStep.WEATHER_VERIFICATION,
            kind=AssetKind.IMAGE,
            content_ref="file://a.jpg",
            geolocation=ROOFTOP,
            **kwargs,
        )

    def test_insert_get_list(self, evidence_repo):
        first = evidence_repo.insert(self._asset())
        second = evidence_repo.insert(self._asset())
        evidence_repo.insert(self._asset(session_id="s-2"))

        assert evidence_repo.get(first.id) == first
        listed = evidence_repo.list_for_session("s-1")
        assert {a.id for a in listed} == {first.id, second.id}
        assert listed == sorted(listed, key=lambda a: (a.captured_at, a.id))
        assert len(evidence_repo.list_for_step("s-1", MethodologyStep.WEATHER_VERIFICATION)) == 2
        assert evidence_repo.list_for_step("s-1", MethodologyStep.SOFT_METALS) == []

    def test_duplicate_insert_rejected(self, evidence_repo):
        asset = evidence_repo.insert(self._asset())
        with pytest.raises(ValueError):
            evidence_repo.insert(asset)

    def test_save_updates_analysis(self, evidence_repo):
        asset = evidence_repo.insert(self._asset())
        asset.analysis = AIAnalysis(is_valid=True, confidence=0.9)

        evidence_repo.save(asset)

        assert evidence_repo.get(asset.id).analysis.confidence == 0.9

    def test_save_unknown_raises(self, evidence_repo):
        with pytest.raises(KeyError):
            evidence_repo.save(self._asset())

    def test_list_for_unknown_session(self, evidence_repo):
        assert evidence_repo.list_for_session("nobody") == []


class TestEngineOverFiles:
    def test_session_resumes_across_restarts(self, tmp_path, make_registry):
        registry = make_registry(weather_verification={"min_evidence_count": 1})

        def build():
            sessions = FileSessionRepository(tmp_path)
            store = EvidenceStore(sessions, FileEvidenceRepository(tmp_path))
            return SessionManager(sessions, store, registry=registry), store

        manager, store = build()
        session = manager.get_or_create_active("P-1")
        store.attach(session.id, MethodologyStep.WEATHER_VERIFICATION, AssetKind.IMAGE, "a.jpg")

        manager, store = build()
        resumed = manager.get_or_create_active("P-1")
        assert resumed.id == session.id

        outcome = manager.advance(resumed.id)
        assert outcome.session.current_step is MethodologyStep.THERMAL_IMAGING
