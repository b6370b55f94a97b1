"""Typed errors for the inspection workflow engine.

Every error a caller can act on carries a stable ``code`` so the operation
surface can translate it into a machine-readable payload. Programmer errors
(unknown steps, malformed registries) stay as ``ValueError``.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from inspectflow.workflow.step_validator import ValidationResult


class MethodologyError(Exception):
    """Base class for all workflow-engine errors."""

    code = "METHODOLOGY_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the error payload returned by the operation surface."""
        return {"error": self.code, "message": self.message}


class ValidationBlocked(MethodologyError):
    """Raised when an advance is refused because the current step has blockers."""

    code = "VALIDATION_BLOCKED"

    def __init__(self, result: "ValidationResult") -> None:
        reasons = "; ".join(b.message for b in result.blockers) or "validation failed"
        super().__init__(f"Cannot complete {result.step.value}: {reasons}")
        self.result = result

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["blockers"] = [b.to_dict() for b in self.result.blockers]
        payload["warnings"] = [w.to_dict() for w in self.result.warnings]
        return payload


class SkipNotAllowed(MethodologyError):
    """Raised when skipping a step the methodology marks as mandatory."""

    code = "SKIP_NOT_ALLOWED"

    def __init__(self, step_value: str) -> None:
        super().__init__(f"Step '{step_value}' cannot be skipped")
        self.step = step_value


class InvalidSkipReason(MethodologyError):
    """Raised when a skip reason is not in the step's closed set."""

    code = "INVALID_SKIP_REASON"

    def __init__(self, step_value: str, reason: str, allowed: tuple[str, ...]) -> None:
        super().__init__(f"'{reason}' is not a valid skip reason for step '{step_value}'")
        self.step = step_value
        self.reason = reason
        self.allowed = allowed

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["allowed_reasons"] = list(self.allowed)
        return payload


class SessionAlreadyCompleted(MethodologyError):
    """Raised when mutating a session that has reached the terminal state."""

    code = "SESSION_ALREADY_COMPLETED"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} is already completed")
        self.session_id = session_id


class ConcurrentModification(MethodologyError):
    """Raised when a session changed between read and compare-and-swap write."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, session_id: str, expected_version: int, actual_version: int | None) -> None:
        super().__init__(
            f"Session {session_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["expected_version"] = self.expected_version
        payload["actual_version"] = self.actual_version
        return payload


class NotFound(MethodologyError):
    """Base class for missing sessions or evidence."""

    code = "NOT_FOUND"


class SessionNotFound(NotFound):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class EvidenceNotFound(NotFound):
    def __init__(self, evidence_id: str) -> None:
        super().__init__(f"Evidence not found: {evidence_id}")
        self.evidence_id = evidence_id


class StepNotOpen(MethodologyError):
    """Raised when attaching evidence to a step other than the current one."""

    code = "STEP_NOT_OPEN"

    def __init__(self, step_value: str, current_value: str | None) -> None:
        super().__init__(
            f"Step '{step_value}' is not open for evidence (current step: {current_value})"
        )
        self.step = step_value
        self.current_step = current_value


class InvalidAnalysisPayload(MethodologyError):
    """Raised when an analysis-result callback carries a malformed payload."""

    code = "INVALID_ANALYSIS_PAYLOAD"
