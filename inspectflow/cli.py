"""Command-line access to the operation surface.

Runs against the JSON-file backend so state persists between invocations:

    inspectflow --data-dir ./inspections start PROP-17
    inspectflow attach <session_id> weather_verification image s3://bucket/a.jpg
    inspectflow analysis-result <evidence_id> --valid --confidence 0.92 --finding "Hail impacts"
    inspectflow advance <session_id>
    inspectflow skip <session_id> "No test squares needed"
    inspectflow snapshot <session_id>

Every command prints JSON. Engine errors print their error payload and exit
with status 2.
"""

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

from inspectflow.config import EngineConfig, StorageBackend
from inspectflow.errors import MethodologyError
from inspectflow.service import InspectionService, build_service
from inspectflow.telemetry import TelemetryConfig, init_telemetry, shutdown_telemetry
from inspectflow.telemetry.config import LOG_DATE_FORMAT, LOG_FORMAT

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inspectflow",
        description="Inspection methodology workflow engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Directory for persisted sessions and evidence (default: INSPECTFLOW_DATA_DIR)",
    )
    parser.add_argument(
        "--analyze",
        action="store_true",
        help="Dispatch attached evidence to the AI analysis provider and wait for verdicts",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Initialize OpenTelemetry tracing (exporter from OTEL_TRACES_EXPORTER)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Get or create the active session for a property")
    start.add_argument("property_id")

    attach = sub.add_parser("attach", help="Attach evidence to the current step")
    attach.add_argument("session_id")
    attach.add_argument("step")
    attach.add_argument("kind", help="image, thermal_image or audio")
    attach.add_argument("content_ref")
    attach.add_argument("--lat", type=float, default=None)
    attach.add_argument("--lon", type=float, default=None)

    result = sub.add_parser("analysis-result", help="Record an AI analysis verdict")
    result.add_argument("evidence_id")
    verdict = result.add_mutually_exclusive_group(required=True)
    verdict.add_argument("--valid", dest="is_valid", action="store_true")
    verdict.add_argument("--invalid", dest="is_valid", action="store_false")
    result.add_argument("--confidence", type=float, required=True)
    result.add_argument("--finding", action="append", default=[], dest="findings")

    analyze = sub.add_parser("analyze", help="Request (re)analysis of evidence")
    analyze.add_argument("evidence_id")

    for name, help_text in (
        ("advance", "Complete the current step"),
        ("preview", "Show the current step's blockers and warnings"),
        ("snapshot", "Show session, evidence and completeness"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("session_id")
        if name == "advance":
            cmd.add_argument("--expected-version", type=int, default=None)

    skip = sub.add_parser("skip", help="Skip the current step with a reason")
    skip.add_argument("session_id")
    skip.add_argument("reason")
    skip.add_argument("--expected-version", type=int, default=None)

    sub.add_parser("steps", help="List the methodology steps and their requirements")

    return parser


def _run_command(service: InspectionService, args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "start":
        return service.start_session(args.property_id)
    if args.command == "attach":
        geolocation = None
        if args.lat is not None and args.lon is not None:
            geolocation = {"latitude": args.lat, "longitude": args.lon}
        return service.attach_evidence(
            args.session_id, args.step, args.kind, args.content_ref, geolocation=geolocation
        )
    if args.command == "analysis-result":
        return service.record_analysis_result(
            args.evidence_id,
            {"is_valid": args.is_valid, "confidence": args.confidence, "findings": args.findings},
        )
    if args.command == "analyze":
        return service.request_analysis(args.evidence_id)
    if args.command == "advance":
        return service.advance(args.session_id, expected_version=args.expected_version)
    if args.command == "skip":
        return service.skip(args.session_id, args.reason, expected_version=args.expected_version)
    if args.command == "preview":
        return service.preview(args.session_id)
    if args.command == "snapshot":
        return service.snapshot(args.session_id)
    if args.command == "steps":
        return service.step_catalog()
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None, service: InspectionService | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Arguments (defaults to ``sys.argv[1:]``).
        service: Pre-built service, used instead of the file-backed one.

    Returns:
        Process exit status.
    """
    args = _build_parser().parse_args(argv)

    log_level = "DEBUG" if args.verbose else "WARNING"
    if args.trace:
        init_telemetry(dataclasses.replace(TelemetryConfig.from_env(), log_level=log_level))
    else:
        logging.basicConfig(level=log_level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if service is None:
        config = dataclasses.replace(
            EngineConfig.from_env(),
            storage_backend=StorageBackend.FILE,
            analysis_enabled=args.analyze,
        )
        if args.data_dir:
            config = dataclasses.replace(config, data_dir=Path(args.data_dir))
        service = build_service(config)

    try:
        payload = _run_command(service, args)
        status = EXIT_OK
    except MethodologyError as e:
        payload = e.to_dict()
        status = EXIT_ERROR
    except ValueError as e:
        payload = {"error": "INVALID_ARGUMENT", "message": str(e)}
        status = EXIT_ERROR
    finally:
        service.close()
        shutdown_telemetry()

    print(json.dumps(payload, indent=2))
    return status


if __name__ == "__main__":
    sys.exit(main())
