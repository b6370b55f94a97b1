"""Tests for the evidence store: attach preconditions and analysis recording."""

import threading

import pytest

from inspectflow.config import AssetKind
from inspectflow.errors import (
    EvidenceNotFound,
    SessionAlreadyCompleted,
    SessionNotFound,
    StepNotOpen,
)
from inspectflow.evidence.analysis import AnalysisDispatcher
from inspectflow.evidence.evidence_store import EvidenceStore
from inspectflow.evidence.models import AIAnalysis
from inspectflow.workflow.step_registry import MethodologyStep

WEATHER = MethodologyStep.WEATHER_VERIFICATION


class TestAttach:
    def test_attach_to_current_step(self, engine, site):
        session = engine.start()

        asset = engine.store.attach(session.id, WEATHER, AssetKind.IMAGE, "s3://b/1.jpg", site)

        assert asset.step is WEATHER
        assert asset.analysis is None
        assert asset.analysis_pending
        assert engine.store.list_for_step(session.id, WEATHER) == [asset]

    def test_attach_unknown_session(self, engine):
        with pytest.raises(SessionNotFound):
            engine.store.attach("nope", WEATHER, AssetKind.IMAGE, "x")

    def test_attach_to_future_step_rejected(self, engine):
        session = engine.start()
        with pytest.raises(StepNotOpen) as exc_info:
            engine.store.attach(session.id, MethodologyStep.THERMAL_IMAGING, AssetKind.IMAGE, "x")
        assert exc_info.value.current_step == "weather_verification"

    def test_attach_to_completed_step_rejected(self, engine):
        session = engine.start()
        engine.manager.advance(session.id)

        with pytest.raises(StepNotOpen):
            engine.store.attach(session.id, WEATHER, AssetKind.IMAGE, "late.jpg")

    def test_attach_to_completed_session_rejected(self, open_engine):
        session = open_engine.start()
        for _ in range(8):
            open_engine.manager.advance(session.id)

        with pytest.raises(SessionAlreadyCompleted):
            open_engine.store.attach(session.id, MethodologyStep.REPORT_ASSEMBLY, AssetKind.IMAGE, "x")

    def test_attach_does_not_change_session_version(self, engine):
        session = engine.start()
        engine.attach(session.id, WEATHER, count=3)
        assert engine.manager.get_session(session.id).version == session.version

    def test_parallel_attaches_for_same_step_all_land(self, engine):
        session = engine.start()
        barrier = threading.Barrier(8)
        errors = []

        def attach(i):
            barrier.wait()
            try:
                engine.store.attach(session.id, WEATHER, AssetKind.IMAGE, f"p{i}.jpg")
            except Exception as e:  # pragma: no cover - surfaced by assertion below
                errors.append(e)

        threads = [threading.Thread(target=attach, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(engine.store.list_for_step(session.id, WEATHER)) == 8


class TestRecordAnalysis:
    def test_records_verdict(self, engine, valid_analysis):
        session = engine.start()
        (asset,) = engine.attach(session.id, WEATHER)

        updated = engine.store.record_analysis(asset.id, valid_analysis)

        assert updated.analysis == valid_analysis
        assert updated.analyzed_at is not None
        assert engine.store.get(asset.id).analysis == valid_analysis

    def test_idempotent(self, engine, valid_analysis):
        session = engine.start()
        (asset,) = engine.attach(session.id, WEATHER)

        first = engine.store.record_analysis(asset.id, valid_analysis)
        second = engine.store.record_analysis(asset.id, valid_analysis)

        assert first.analyzed_at == second.analyzed_at
        assert len(engine.store.list_for_session(session.id)) == 1

    def test_later_verdict_replaces_earlier(self, engine, valid_analysis):
        session = engine.start()
        (asset,) = engine.attach(session.id, WEATHER)
        engine.store.record_analysis(asset.id, valid_analysis)

        revised = AIAnalysis(is_valid=False, confidence=0.4, findings=["wrong roof"])
        engine.store.record_analysis(asset.id, revised)

        assert engine.store.get(asset.id).analysis == revised

    def test_unknown_evidence(self, engine, valid_analysis):
        with pytest.raises(EvidenceNotFound):
            engine.store.record_analysis("missing", valid_analysis)

    def test_late_result_after_session_completes_is_stored(self, open_engine, valid_analysis):
        session = open_engine.start()
        (asset,) = open_engine.attach(session.id, WEATHER)
        for _ in range(8):
            open_engine.manager.advance(session.id)

        open_engine.store.record_analysis(asset.id, valid_analysis)

        assert open_engine.store.get(asset.id).analysis == valid_analysis
        assert open_engine.manager.get_session(session.id).version == 9

    def test_confidence_outside_unit_interval_rejected(self):
        with pytest.raises(ValueError):
            AIAnalysis(is_valid=True, confidence=1.2)


class TestDispatchOnAttach:
    def test_attach_dispatches_and_result_lands(self, engine, make_provider):
        provider = make_provider()
        dispatcher = AnalysisDispatcher(provider, max_workers=2)
        store = EvidenceStore(engine.sessions, engine.evidence_repo, dispatcher=dispatcher)
        session = engine.start()

        asset = store.attach(session.id, WEATHER, AssetKind.IMAGE, "x.jpg")
        dispatcher.shutdown(wait=True)

        assert provider.calls == [asset.id]
        assert store.get(asset.id).analysis == provider.analysis

    def test_request_analysis_redispatches(self, engine, make_provider):
        provider = make_provider()
        dispatcher = AnalysisDispatcher(provider, max_workers=1)
        store = EvidenceStore(engine.sessions, engine.evidence_repo, dispatcher=dispatcher)
        session = engine.start()
        asset = store.attach(session.id, WEATHER, AssetKind.IMAGE, "x.jpg")

        store.request_analysis(asset.id)
        dispatcher.shutdown(wait=True)

        assert provider.calls == [asset.id, asset.id]

    def test_request_analysis_unknown_evidence(self, engine):
        with pytest.raises(EvidenceNotFound):
            engine.store.request_analysis("missing")

    def test_request_analysis_without_provider_is_harmless(self, engine):
        session = engine.start()
        (asset,) = engine.attach(session.id, WEATHER)
        assert engine.store.request_analysis(asset.id).analysis is None
