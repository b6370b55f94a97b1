"""Step Requirement Registry for the inspection methodology.

This module is the single source of truth for the ordered methodology steps
and the evidence policy attached to each one: how much evidence a step needs,
whether a positive AI judgment is required, and whether (and why) it may be
skipped.

Design Principles:
- The step order is fixed and global; registries only vary the policy
- Requirements are immutable once loaded
- A catalog can be versioned independently of the engine via a YAML file

Methodology (in order):
- weather_verification: Confirm storm occurrence and date correlation
- thermal_imaging: Thermal scans for moisture detection
- terrestrial_walk: Ground-level walk documenting visible damage
- test_squares / soft_metals / moisture_testing / core_samples: Optional field tests
- report_assembly: Compile findings
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class MethodologyStep(Enum):
    """The fixed, ordered steps of the inspection methodology.

    Declaration order is the protocol order.
    """

    WEATHER_VERIFICATION = "weather_verification"
    THERMAL_IMAGING = "thermal_imaging"
    TERRESTRIAL_WALK = "terrestrial_walk"
    TEST_SQUARES = "test_squares"
    SOFT_METALS = "soft_metals"
    MOISTURE_TESTING = "moisture_testing"
    CORE_SAMPLES = "core_samples"
    REPORT_ASSEMBLY = "report_assembly"

    @classmethod
    def values(cls) -> list[str]:
        """Return all step values as strings, in protocol order."""
        return [step.value for step in cls]


STEP_ORDER: tuple[MethodologyStep, ...] = tuple(MethodologyStep)


@dataclass(frozen=True)
class StepRequirement:
    """Immutable evidence policy for one methodology step."""

    step: MethodologyStep
    display_name: str
    description: str

    min_evidence_count: int = 0
    ai_validation_required: bool = False

    can_skip: bool = False
    skip_reasons: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.min_evidence_count < 0:
            raise ValueError(
                f"min_evidence_count for {self.step.value} must be >= 0, "
                f"got {self.min_evidence_count}"
            )
        if self.can_skip and not self.skip_reasons:
            raise ValueError(f"Skippable step {self.step.value} must declare skip reasons")
        if not self.can_skip and self.skip_reasons:
            raise ValueError(f"Step {self.step.value} is not skippable but declares skip reasons")

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "display_name": self.display_name,
            "description": self.description,
            "min_evidence_count": self.min_evidence_count,
            "ai_validation_required": self.ai_validation_required,
            "can_skip": self.can_skip,
            "skip_reasons": list(self.skip_reasons),
        }


# =============================================================================
# Default Step Catalog - Single Source of Truth
# =============================================================================

_DEFAULT_REQUIREMENTS: list[StepRequirement] = [
    StepRequirement(
        step=MethodologyStep.WEATHER_VERIFICATION,
        display_name="Weather Verification",
        description="Confirm storm occurrence and date correlation",
    ),
    StepRequirement(
        step=MethodologyStep.THERMAL_IMAGING,
        display_name="Thermal Imaging",
        description="Capture thermal scans for moisture detection",
        min_evidence_count=3,
        ai_validation_required=True,
    ),
    StepRequirement(
        step=MethodologyStep.TERRESTRIAL_WALK,
        display_name="Terrestrial Walk",
        description="Document visible damage from ground level",
        min_evidence_count=4,
    ),
    StepRequirement(
        step=MethodologyStep.TEST_SQUARES,
        display_name="Test Squares",
        description="Mark and count impacts in test areas",
        min_evidence_count=2,
        ai_validation_required=True,
        can_skip=True,
        skip_reasons=("No test squares needed", "Property type does not require"),
    ),
    StepRequirement(
        step=MethodologyStep.SOFT_METALS,
        display_name="Soft Metals",
        description="Document dents on gutters, vents, and HVAC",
        min_evidence_count=2,
        ai_validation_required=True,
        can_skip=True,
        skip_reasons=("No soft metals present on property", "Inaccessible areas"),
    ),
    StepRequirement(
        step=MethodologyStep.MOISTURE_TESTING,
        display_name="Moisture Testing",
        description="Take moisture meter readings",
        min_evidence_count=2,
        ai_validation_required=True,
        can_skip=True,
        skip_reasons=("No moisture issues detected", "Weather conditions prevent testing"),
    ),
    StepRequirement(
        step=MethodologyStep.CORE_SAMPLES,
        display_name="Core Samples",
        description="Extract and document core samples if needed",
        min_evidence_count=2,
        ai_validation_required=True,
        can_skip=True,
        skip_reasons=("Core samples not authorized", "Roof system does not require"),
    ),
    StepRequirement(
        step=MethodologyStep.REPORT_ASSEMBLY,
        display_name="Report Assembly",
        description="Compile findings into final report",
    ),
]


# =============================================================================
# Registry Class
# =============================================================================


class StepRegistry:
    """Registry of step requirements with ordered navigation helpers.

    Usage:
        registry = StepRegistry()

        requirement = registry.requirement_for(MethodologyStep.THERMAL_IMAGING)
        nxt = registry.next_step(MethodologyStep.THERMAL_IMAGING)

        # Versioned catalog shipped alongside a deployment
        registry = StepRegistry.from_yaml(Path("methodology.yaml"))
    """

    def __init__(
        self,
        requirements: list[StepRequirement] | None = None,
        version: str = "default",
    ):
        """Initialize the registry.

        Args:
            requirements: Optional custom requirement list covering every step
                exactly once, in protocol order. Uses the default catalog if
                not provided.
            version: Label identifying the catalog revision.

        Raises:
            ValueError: If the requirements do not cover the fixed step order.
        """
        self._requirements = list(requirements) if requirements is not None else _DEFAULT_REQUIREMENTS
        self.version = version

        declared = tuple(r.step for r in self._requirements)
        if declared != STEP_ORDER:
            raise ValueError(
                "Step requirements must list every methodology step exactly once in order. "
                f"Expected {[s.value for s in STEP_ORDER]}, got {[s.value for s in declared]}"
            )

        self._by_step: dict[MethodologyStep, StepRequirement] = {
            r.step: r for r in self._requirements
        }
        self._index: dict[MethodologyStep, int] = {s: i for i, s in enumerate(STEP_ORDER)}

    # =========================================================================
    # Lookup Methods
    # =========================================================================

    def requirement_for(self, step: MethodologyStep) -> StepRequirement:
        """Get the requirement for a step.

        Args:
            step: A methodology step

        Returns:
            StepRequirement for the step

        Raises:
            ValueError: If the step is not part of the methodology
        """
        if step not in self._by_step:
            raise ValueError(f"Unknown methodology step: {step!r}. Valid steps: {STEP_ORDER}")
        return self._by_step[step]

    def all_requirements(self) -> list[StepRequirement]:
        """Get all requirements in protocol order."""
        return list(self._requirements)

    def step_order(self) -> list[MethodologyStep]:
        return list(STEP_ORDER)

    def first_step(self) -> MethodologyStep:
        return STEP_ORDER[0]

    def index_of(self, step: MethodologyStep) -> int:
        if step not in self._index:
            raise ValueError(f"Unknown methodology step: {step!r}")
        return self._index[step]

    def next_step(self, step: MethodologyStep) -> MethodologyStep | None:
        """Return the step after ``step``, or None when ``step`` is the last one."""
        idx = self.index_of(step)
        if idx + 1 >= len(STEP_ORDER):
            return None
        return STEP_ORDER[idx + 1]

    def is_last(self, step: MethodologyStep) -> bool:
        return self.next_step(step) is None

    def __len__(self) -> int:
        return len(self._requirements)

    def __iter__(self):
        return iter(self._requirements)

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepRegistry":
        """Build a registry from a parsed catalog document.

        The document has a ``version`` label and a ``steps`` list; each entry
        names its ``step`` and any requirement fields that differ from the
        defaults.

        Raises:
            ValueError: If the document is malformed.
        """
        if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
            raise ValueError("Methodology catalog must be a mapping with a 'steps' list")

        requirements: list[StepRequirement] = []
        for entry in data["steps"]:
            if not isinstance(entry, dict) or "step" not in entry:
                raise ValueError(f"Invalid step entry in methodology catalog: {entry!r}")
            step = MethodologyStep(entry["step"])
            requirements.append(
                StepRequirement(
                    step=step,
                    display_name=entry.get("display_name", step.value.replace("_", " ").title()),
                    description=entry.get("description", ""),
                    min_evidence_count=int(entry.get("min_evidence_count", 0)),
                    ai_validation_required=bool(entry.get("ai_validation_required", False)),
                    can_skip=bool(entry.get("can_skip", False)),
                    skip_reasons=tuple(entry.get("skip_reasons") or ()),
                )
            )

        return cls(requirements, version=str(data.get("version", "unversioned")))

    @classmethod
    def from_yaml(cls, path: Path) -> "StepRegistry":
        """Load a versioned step catalog from a YAML file.

        Raises:
            ValueError: If the file is not a valid catalog.
            OSError: If the file cannot be read.
        """
        data = yaml.safe_load(Path(path).read_text())
        registry = cls.from_dict(data)
        logger.info(f"Loaded methodology catalog '{registry.version}' from {path}")
        return registry

    def to_yaml(self) -> str:
        """Serialize the catalog back to YAML."""
        payload = {
            "version": self.version,
            "steps": [r.to_dict() for r in self._requirements],
        }
        return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)


# =============================================================================
# Singleton Instance
# =============================================================================

_registry: StepRegistry | None = None


def get_step_registry() -> StepRegistry:
    """Get the global step registry singleton.

    Honours ``INSPECTFLOW_METHODOLOGY_FILE`` when set; otherwise the default
    catalog is used.
    """
    global _registry
    if _registry is None:
        catalog = os.getenv("INSPECTFLOW_METHODOLOGY_FILE")
        _registry = StepRegistry.from_yaml(Path(catalog)) if catalog else StepRegistry()
    return _registry


def reset_step_registry() -> None:
    """Drop the cached registry so the next lookup reloads it."""
    global _registry
    _registry = None


# =============================================================================
# Convenience functions
# =============================================================================


def get_requirement(step: MethodologyStep) -> StepRequirement:
    """Get the requirement for a step from the global registry."""
    return get_step_registry().requirement_for(step)


def parse_step(value: str | MethodologyStep) -> MethodologyStep:
    """Coerce a wire value into a MethodologyStep.

    Raises:
        ValueError: If the value is not a methodology step.
    """
    if isinstance(value, MethodologyStep):
        return value
    try:
        return MethodologyStep(value)
    except ValueError:
        raise ValueError(
            f"Unknown methodology step: {value}. Valid steps: {MethodologyStep.values()}"
        ) from None
