"""Centralized configuration for the inspection workflow engine.

This module is the single source of truth for status values, scoring policy
and the runtime settings read from the environment.

Design Principles:
- Policy knobs (skip credit, confidence threshold, report readiness) in one place
- Enums for type-safe status values
- Runtime settings resolved once via EngineConfig.from_env()
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# =============================================================================
# Enums for Type Safety
# =============================================================================


class SessionStatus(Enum):
    """Lifecycle status of an inspection session."""

    ACTIVE = "active"
    COMPLETED = "completed"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid status values as strings."""
        return [status.value for status in cls]


class StepStatus(Enum):
    """Resolution status of a methodology step within a session."""

    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid status values as strings."""
        return [status.value for status in cls]


class AssetKind(Enum):
    """Kinds of evidence the capture surface can attach."""

    IMAGE = "image"
    THERMAL_IMAGE = "thermal_image"
    AUDIO = "audio"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid asset kinds as strings."""
        return [kind.value for kind in cls]


class StorageBackend(Enum):
    """Persistence backends for sessions and evidence."""

    MEMORY = "memory"
    FILE = "file"


class CompletenessBand(Enum):
    """Coarse label derived from the completeness score."""

    INCOMPLETE = "incomplete"
    PARTIAL = "partial"
    COMPLETE = "complete"
    VALIDATED = "validated"


# =============================================================================
# Scoring Policy
# =============================================================================

# Fraction of a completed step's weight credited to a skipped step.
SKIPPED_STEP_CREDIT = 0.5

# Positive AI judgments below this confidence produce a non-blocking warning.
LOW_CONFIDENCE_THRESHOLD = 0.7

# Minimum score at which a session is considered ready for report generation.
READY_FOR_REPORT_SCORE = 70

# Below this score, recommendations point at the mandatory steps still pending.
MANDATORY_FOCUS_SCORE = 50

# Pending steps named in a "complete the following steps" recommendation.
RECOMMENDED_STEPS_SHOWN = 3

# Lower bounds (inclusive) for each completeness band, highest first.
COMPLETENESS_BANDS: list[tuple[int, CompletenessBand]] = [
    (95, CompletenessBand.VALIDATED),
    (75, CompletenessBand.COMPLETE),
    (25, CompletenessBand.PARTIAL),
    (0, CompletenessBand.INCOMPLETE),
]


def band_for_score(score: int) -> CompletenessBand:
    """Map a 0-100 completeness score to its band."""
    for lower_bound, band in COMPLETENESS_BANDS:
        if score >= lower_bound:
            return band
    return CompletenessBand.INCOMPLETE


# =============================================================================
# Concurrency & Analysis
# =============================================================================

# Automatic re-attempts after a compare-and-swap conflict (0 = report immediately).
DEFAULT_CAS_RETRY_LIMIT = 0

ANALYSIS_MAX_WORKERS = 4
ANALYSIS_TIMEOUT_SECONDS = 120.0

DEFAULT_DATA_DIR = Path("inspection_data")


# =============================================================================
# Runtime Configuration
# =============================================================================


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None


@dataclass(frozen=True)
class EngineConfig:
    """Runtime settings for the workflow engine.

    All values can be read from environment variables via ``from_env()``;
    direct construction is used by tests and embedding applications.
    """

    storage_backend: StorageBackend = StorageBackend.MEMORY
    data_dir: Path = DEFAULT_DATA_DIR
    methodology_file: Path | None = None

    skipped_step_credit: float = SKIPPED_STEP_CREDIT
    low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD
    cas_retry_limit: int = DEFAULT_CAS_RETRY_LIMIT

    analysis_enabled: bool = True
    analysis_max_workers: int = ANALYSIS_MAX_WORKERS
    analysis_timeout_seconds: float = ANALYSIS_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if not 0.0 <= self.skipped_step_credit <= 1.0:
            raise ValueError(
                f"skipped_step_credit must be within [0, 1], got {self.skipped_step_credit}"
            )
        if not 0.0 <= self.low_confidence_threshold <= 1.0:
            raise ValueError(
                "low_confidence_threshold must be within [0, 1], "
                f"got {self.low_confidence_threshold}"
            )
        if self.cas_retry_limit < 0:
            raise ValueError(f"cas_retry_limit must be >= 0, got {self.cas_retry_limit}")
        if self.analysis_max_workers < 1:
            raise ValueError(
                f"analysis_max_workers must be >= 1, got {self.analysis_max_workers}"
            )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create config from environment variables.

        Environment Variables:
            INSPECTFLOW_STORAGE: ``memory`` or ``file`` (default: memory)
            INSPECTFLOW_DATA_DIR: Directory for the file backend
            INSPECTFLOW_METHODOLOGY_FILE: Optional YAML step catalog
            INSPECTFLOW_SKIPPED_CREDIT: Credit for skipped steps (default: 0.5)
            INSPECTFLOW_LOW_CONFIDENCE_THRESHOLD: Warning threshold (default: 0.7)
            INSPECTFLOW_CAS_RETRIES: Retries after a version conflict (default: 0)
            INSPECTFLOW_ANALYSIS_ENABLED: Dispatch AI analysis on attach (default: true)
            INSPECTFLOW_ANALYSIS_WORKERS: Analysis worker pool size (default: 4)

        Raises:
            ValueError: If any variable holds an invalid value.
        """
        raw_backend = os.getenv("INSPECTFLOW_STORAGE", "memory").strip().lower()
        try:
            backend = StorageBackend(raw_backend)
        except ValueError:
            valid = ", ".join(b.value for b in StorageBackend)
            raise ValueError(
                f"Unknown INSPECTFLOW_STORAGE '{raw_backend}'. Valid options: {valid}"
            ) from None

        methodology_file = os.getenv("INSPECTFLOW_METHODOLOGY_FILE")

        config = cls(
            storage_backend=backend,
            data_dir=Path(os.getenv("INSPECTFLOW_DATA_DIR", str(DEFAULT_DATA_DIR))),
            methodology_file=Path(methodology_file) if methodology_file else None,
            skipped_step_credit=_env_float("INSPECTFLOW_SKIPPED_CREDIT", SKIPPED_STEP_CREDIT),
            low_confidence_threshold=_env_float(
                "INSPECTFLOW_LOW_CONFIDENCE_THRESHOLD", LOW_CONFIDENCE_THRESHOLD
            ),
            cas_retry_limit=_env_int("INSPECTFLOW_CAS_RETRIES", DEFAULT_CAS_RETRY_LIMIT),
            analysis_enabled=_env_bool("INSPECTFLOW_ANALYSIS_ENABLED", True),
            analysis_max_workers=_env_int("INSPECTFLOW_ANALYSIS_WORKERS", ANALYSIS_MAX_WORKERS),
        )
        logger.debug(f"Engine config resolved: backend={backend.value}, data_dir={config.data_dir}")
        return config
