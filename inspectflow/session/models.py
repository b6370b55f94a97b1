"""Pydantic models for inspection sessions.

A session is mutated only by the SessionManager. Every mutation bumps
``version``, which the persistence layer uses for compare-and-swap.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from inspectflow.config import SessionStatus, StepStatus
from inspectflow.evidence.models import utc_now
from inspectflow.workflow.step_registry import STEP_ORDER, MethodologyStep


class SkipRecord(BaseModel):
    """Audit entry for a step that was skipped instead of completed."""

    step: MethodologyStep
    reason: str
    skipped_at: datetime = Field(default_factory=utc_now)


class InspectionSession(BaseModel):
    """Protocol progress for one inspection of one property."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    property_id: str
    current_step: MethodologyStep | None = STEP_ORDER[0]  # None once completed
    completed_steps: list[MethodologyStep] = Field(default_factory=list)
    skipped: list[SkipRecord] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE

    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    last_activity_at: datetime = Field(default_factory=utc_now)

    version: int = 1

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    @property
    def skipped_steps(self) -> list[MethodologyStep]:
        return [record.step for record in self.skipped]

    def step_status(self, step: MethodologyStep) -> StepStatus:
        if step in self.completed_steps:
            return StepStatus.COMPLETED
        if step in self.skipped_steps:
            return StepStatus.SKIPPED
        return StepStatus.PENDING

    def first_unresolved_step(self) -> MethodologyStep | None:
        """Return the first step that is neither completed nor skipped."""
        resolved = set(self.completed_steps) | set(self.skipped_steps)
        for step in STEP_ORDER:
            if step not in resolved:
                return step
        return None

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
