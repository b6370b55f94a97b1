"""Shared test fixtures.

Centralizes the engine wiring used across the test modules: in-memory
repositories, a session manager over the default methodology, small custom
registries for end-to-end scenarios, and a synchronous fake analysis provider.
Helpers that tests parameterize are exposed as factory fixtures
(``make_registry``, ``make_engine``, ``make_provider``).
"""

import threading

import pytest

from inspectflow.config import AssetKind, EngineConfig
from inspectflow.evidence.analysis import AnalysisProvider
from inspectflow.evidence.evidence_store import EvidenceStore
from inspectflow.evidence.models import AIAnalysis, EvidenceAsset, GeoLocation
from inspectflow.session.session_manager import SessionManager
from inspectflow.storage.memory import InMemoryEvidenceRepository, InMemorySessionRepository
from inspectflow.workflow.step_registry import (
    STEP_ORDER,
    MethodologyStep,
    StepRegistry,
    StepRequirement,
)

SITE = GeoLocation(latitude=32.7767, longitude=-96.7970)


def build_registry(**overrides: dict) -> StepRegistry:
    """Build a registry where every step is free to complete unless overridden.

    Example:
        build_registry(weather_verification={"min_evidence_count": 2})
    """
    requirements = []
    for step in STEP_ORDER:
        fields = {
            "min_evidence_count": 0,
            "ai_validation_required": False,
            "can_skip": False,
            "skip_reasons": (),
        }
        fields.update(overrides.get(step.value, {}))
        requirements.append(
            StepRequirement(
                step=step,
                display_name=step.value.replace("_", " ").title(),
                description=f"Test requirement for {step.value}",
                **fields,
            )
        )
    return StepRegistry(requirements, version="test")


class FakeProvider(AnalysisProvider):
    """Analysis provider returning a preset verdict and recording calls."""

    name = "fake"

    def __init__(self, analysis: AIAnalysis | None = None, error: Exception | None = None):
        self.analysis = analysis or AIAnalysis(is_valid=True, confidence=0.9, findings=["ok"])
        self.error = error
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def analyze(self, asset: EvidenceAsset) -> AIAnalysis | None:
        with self._lock:
            self.calls.append(asset.id)
        if self.error is not None:
            raise self.error
        return self.analysis


class Engine:
    """Bundle of wired engine components for a test."""

    def __init__(self, registry: StepRegistry | None = None, config: EngineConfig | None = None):
        self.registry = registry or StepRegistry()
        self.config = config or EngineConfig()
        self.sessions = InMemorySessionRepository()
        self.evidence_repo = InMemoryEvidenceRepository()
        self.store = EvidenceStore(self.sessions, self.evidence_repo)
        self.manager = SessionManager(
            self.sessions, self.store, registry=self.registry, config=self.config
        )

    def start(self, property_id: str = "PROP-1"):
        return self.manager.get_or_create_active(property_id)

    def attach(self, session_id: str, step: MethodologyStep, count: int = 1, kind=AssetKind.IMAGE):
        return [
            self.store.attach(session_id, step, kind, f"mem://{step.value}/{i}.jpg", geolocation=SITE)
            for i in range(count)
        ]

    def satisfy_and_advance(self, session_id: str):
        """Attach whatever the current step needs, validate it, and advance."""
        session = self.manager.get_session(session_id)
        step = session.current_step
        requirement = self.registry.requirement_for(step)
        needed = max(requirement.min_evidence_count, 1 if requirement.ai_validation_required else 0)
        for asset in self.attach(session_id, step, count=needed):
            if requirement.ai_validation_required:
                self.store.record_analysis(
                    asset.id, AIAnalysis(is_valid=True, confidence=0.95, findings=["clear"])
                )
        return self.manager.advance(session_id)


@pytest.fixture
def engine():
    """Engine over the default methodology catalog."""
    return Engine()


@pytest.fixture
def open_engine():
    """Engine whose steps need no evidence and allow no skips."""
    return Engine(registry=build_registry())


@pytest.fixture
def valid_analysis():
    return AIAnalysis(is_valid=True, confidence=0.92, findings=["Hail impacts visible"])


@pytest.fixture
def site():
    return SITE


@pytest.fixture
def make_registry():
    """Factory for registries with per-step requirement overrides."""
    return build_registry


@pytest.fixture
def make_engine():
    """Factory for engines over a given registry and config."""

    def _make(registry: StepRegistry | None = None, config: EngineConfig | None = None) -> Engine:
        return Engine(registry=registry, config=config)

    return _make


@pytest.fixture
def make_provider():
    """Factory for fake analysis providers."""

    def _make(analysis: AIAnalysis | None = None, error: Exception | None = None) -> FakeProvider:
        return FakeProvider(analysis=analysis, error=error)

    return _make
