"""Pydantic models for evidence captured during an inspection.

An evidence record is created by ``attach`` with no analysis and acquires an
``AIAnalysis`` later, when the external provider reports back. A missing
analysis means "pending"; it is not the same as ``is_valid=False``.
"""

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from inspectflow.config import AssetKind
from inspectflow.workflow.step_registry import MethodologyStep


def utc_now() -> datetime:
    return datetime.now(UTC)


class GeoLocation(BaseModel):
    """Opaque capture location supplied by the client."""

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    accuracy_m: float | None = Field(default=None, ge=0.0)


class AIAnalysis(BaseModel):
    """Validity judgment returned by the AI analysis provider."""

    is_valid: bool
    confidence: float = Field(ge=0.0, le=1.0)
    findings: list[str] = Field(default_factory=list)


class EvidenceAsset(BaseModel):
    """A captured artifact attributed to a session and methodology step."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    step: MethodologyStep
    kind: AssetKind
    content_ref: str  # Opaque pointer into the capture surface's storage
    geolocation: GeoLocation | None = None
    captured_at: datetime = Field(default_factory=utc_now)

    analysis: AIAnalysis | None = None
    analyzed_at: datetime | None = None

    @property
    def analysis_pending(self) -> bool:
        return self.analysis is None

    @property
    def has_positive_analysis(self) -> bool:
        return self.analysis is not None and self.analysis.is_valid

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
