"""Tests for the command-line entry point."""

import json

import pytest

from inspectflow.cli import EXIT_ERROR, EXIT_OK, main
from inspectflow.config import EngineConfig
from inspectflow.service import build_service


def _run(capsys, argv, service=None):
    status = main(argv, service=service)
    return status, json.loads(capsys.readouterr().out)


@pytest.fixture
def file_env(tmp_path, monkeypatch):
    monkeypatch.setenv("INSPECTFLOW_ANALYSIS_ENABLED", "false")
    monkeypatch.delenv("INSPECTFLOW_METHODOLOGY_FILE", raising=False)
    return ["--data-dir", str(tmp_path)]


class TestFileBackedCli:
    def test_start_attach_advance_across_invocations(self, capsys, file_env):
        status, started = _run(capsys, file_env + ["start", "PROP-7"])
        assert status == EXIT_OK
        session_id = started["session"]["id"]

        status, asset = _run(
            capsys,
            file_env
            + ["attach", session_id, "weather_verification", "image", "radar.png", "--lat", "32.7", "--lon", "-96.8"],
        )
        assert status == EXIT_OK
        assert asset["geolocation"] == {"latitude": 32.7, "longitude": -96.8, "accuracy_m": None}

        status, advanced = _run(capsys, file_env + ["advance", session_id])
        assert status == EXIT_OK
        assert advanced["session"]["current_step"] == "thermal_imaging"

        status, snapshot = _run(capsys, file_env + ["snapshot", session_id])
        assert len(snapshot["evidence_by_step"]["weather_verification"]) == 1

    def test_blocked_advance_exits_with_error_payload(self, capsys, file_env):
        _, started = _run(capsys, file_env + ["start", "PROP-7"])
        session_id = started["session"]["id"]
        _run(capsys, file_env + ["advance", session_id])

        status, payload = _run(capsys, file_env + ["advance", session_id])

        assert status == EXIT_ERROR
        assert payload["error"] == "VALIDATION_BLOCKED"
        assert {b["code"] for b in payload["blockers"]} == {
            "INSUFFICIENT_EVIDENCE",
            "AI_VALIDATION_MISSING",
        }

    def test_stale_expected_version(self, capsys, file_env):
        _, started = _run(capsys, file_env + ["start", "PROP-7"])
        session_id = started["session"]["id"]
        _run(capsys, file_env + ["advance", session_id])

        status, payload = _run(
            capsys, file_env + ["advance", session_id, "--expected-version", "1"]
        )

        assert status == EXIT_ERROR
        assert payload["error"] == "CONCURRENT_MODIFICATION"

    def test_invalid_step_is_argument_error(self, capsys, file_env):
        _, started = _run(capsys, file_env + ["start", "PROP-7"])

        status, payload = _run(
            capsys, file_env + ["attach", started["session"]["id"], "chimney", "image", "x"]
        )

        assert status == EXIT_ERROR
        assert payload["error"] == "INVALID_ARGUMENT"

    def test_steps_lists_catalog(self, capsys, file_env):
        status, catalog = _run(capsys, file_env + ["steps"])
        assert status == EXIT_OK
        assert catalog["steps"][-1]["step"] == "report_assembly"


class TestInjectedService:
    @pytest.fixture
    def service(self, make_registry):
        registry = make_registry(
            weather_verification={"min_evidence_count": 1, "ai_validation_required": True},
            thermal_imaging={"can_skip": True, "skip_reasons": ("Camera unavailable",)},
        )
        return build_service(EngineConfig(analysis_enabled=False), registry=registry)

    def test_analysis_result_then_advance_then_skip(self, capsys, service):
        session_id = service.start_session("P")["session"]["id"]
        asset = service.attach_evidence(session_id, "weather_verification", "image", "x.jpg")

        status, ack = _run(
            capsys,
            ["analysis-result", asset["id"], "--valid", "--confidence", "0.9", "--finding", "Hail"],
            service=service,
        )
        assert status == EXIT_OK
        assert ack["evidence"]["analysis"]["findings"] == ["Hail"]

        status, _ = _run(capsys, ["advance", session_id], service=service)
        assert status == EXIT_OK

        status, skipped = _run(capsys, ["skip", session_id, "Camera unavailable"], service=service)
        assert status == EXIT_OK
        assert skipped["session"]["skipped"][0]["reason"] == "Camera unavailable"

    def test_skip_not_allowed(self, capsys, service):
        session_id = service.start_session("P")["session"]["id"]

        status, payload = _run(capsys, ["skip", session_id, "whatever"], service=service)

        assert status == EXIT_ERROR
        assert payload["error"] == "SKIP_NOT_ALLOWED"

    def test_preview(self, capsys, service):
        session_id = service.start_session("P")["session"]["id"]

        status, payload = _run(capsys, ["preview", session_id], service=service)

        assert status == EXIT_OK
        assert payload["can_advance"] is False
        assert payload["blockers"][0]["code"] == "INSUFFICIENT_EVIDENCE"
