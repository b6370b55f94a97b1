"""Operation surface consumed by clients.

``InspectionService`` accepts wire-shaped arguments (step names as strings,
payload dicts), delegates to the engine components, and returns JSON-ready
dicts. Engine errors propagate as ``MethodologyError`` subclasses; their
``to_dict()`` is the error payload a transport should return.
"""

import logging
from typing import Any

from pydantic import ValidationError

from inspectflow.config import AssetKind, EngineConfig, StorageBackend
from inspectflow.errors import InvalidAnalysisPayload
from inspectflow.evidence.analysis import AnalysisDispatcher, AnalysisProvider
from inspectflow.evidence.evidence_store import EvidenceStore
from inspectflow.evidence.models import AIAnalysis, GeoLocation
from inspectflow.session.session_manager import SessionManager
from inspectflow.storage.base import EvidenceRepository, SessionRepository
from inspectflow.storage.file_backend import FileEvidenceRepository, FileSessionRepository
from inspectflow.storage.memory import InMemoryEvidenceRepository, InMemorySessionRepository
from inspectflow.workflow.step_guidance import get_step_guidance
from inspectflow.workflow.step_registry import StepRegistry, get_step_registry, parse_step

logger = logging.getLogger(__name__)


def _parse_kind(value: str | AssetKind) -> AssetKind:
    if isinstance(value, AssetKind):
        return value
    try:
        return AssetKind(value)
    except ValueError:
        raise ValueError(
            f"Unknown asset kind: {value}. Valid kinds: {AssetKind.values()}"
        ) from None


class InspectionService:
    """Facade over the session manager and evidence store.

    Args:
        manager: Session manager.
        evidence_store: Evidence store.
        dispatcher: Analysis dispatcher, shut down by ``close()``.
    """

    def __init__(
        self,
        manager: SessionManager,
        evidence_store: EvidenceStore,
        dispatcher: AnalysisDispatcher | None = None,
    ) -> None:
        self.manager = manager
        self.evidence_store = evidence_store
        self.dispatcher = dispatcher

    @property
    def registry(self) -> StepRegistry:
        return self.manager.registry

    # =========================================================================
    # Sessions
    # =========================================================================

    def start_session(self, property_id: str) -> dict[str, Any]:
        """Get or create the property's active session."""
        session = self.manager.get_or_create_active(property_id)
        return {
            "session": session.to_dict(),
            "completeness": self.manager.score(session).to_dict(),
        }

    def advance(self, session_id: str, expected_version: int | None = None) -> dict[str, Any]:
        return self.manager.advance(session_id, expected_version=expected_version).to_dict()

    def skip(
        self, session_id: str, reason: str, expected_version: int | None = None
    ) -> dict[str, Any]:
        return self.manager.skip(session_id, reason, expected_version=expected_version).to_dict()

    def preview(self, session_id: str) -> dict[str, Any]:
        return self.manager.preview(session_id).to_dict()

    def snapshot(self, session_id: str) -> dict[str, Any]:
        return self.manager.snapshot(session_id).to_dict()

    # =========================================================================
    # Evidence
    # =========================================================================

    def attach_evidence(
        self,
        session_id: str,
        step: str,
        kind: str,
        content_ref: str,
        geolocation: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Attach evidence to the session's current step.

        Raises:
            ValueError: If ``step``, ``kind`` or ``geolocation`` is malformed.
        """
        if not content_ref:
            raise ValueError("content_ref is required")
        try:
            location = GeoLocation.model_validate(geolocation) if geolocation else None
        except ValidationError as e:
            raise ValueError(f"Invalid geolocation: {e}") from e

        asset = self.evidence_store.attach(
            session_id,
            parse_step(step),
            _parse_kind(kind),
            content_ref,
            geolocation=location,
        )
        return asset.to_dict()

    def request_analysis(self, evidence_id: str) -> dict[str, Any]:
        return self.evidence_store.request_analysis(evidence_id).to_dict()

    def record_analysis_result(self, evidence_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Provider callback: store an analysis verdict.

        Raises:
            InvalidAnalysisPayload: If the payload does not match the analysis shape.
            EvidenceNotFound: If the evidence id is unknown.
        """
        try:
            analysis = AIAnalysis.model_validate(payload)
        except ValidationError as e:
            raise InvalidAnalysisPayload(f"Malformed analysis for {evidence_id}: {e}") from e

        asset = self.evidence_store.record_analysis(evidence_id, analysis)
        return {"acknowledged": True, "evidence": asset.to_dict()}

    # =========================================================================
    # Catalog
    # =========================================================================

    def step_catalog(self) -> dict[str, Any]:
        """Step requirements and operator guidance, in protocol order."""
        return {
            "version": self.registry.version,
            "steps": [
                {**requirement.to_dict(), "guidance": get_step_guidance(requirement.step).to_dict()}
                for requirement in self.registry
            ],
        }

    def close(self) -> None:
        if self.dispatcher is not None:
            self.dispatcher.shutdown(wait=True)


def _build_repositories(config: EngineConfig) -> tuple[SessionRepository, EvidenceRepository]:
    if config.storage_backend is StorageBackend.FILE:
        return FileSessionRepository(config.data_dir), FileEvidenceRepository(config.data_dir)
    return InMemorySessionRepository(), InMemoryEvidenceRepository()


def build_service(
    config: EngineConfig | None = None,
    provider: AnalysisProvider | None = None,
    registry: StepRegistry | None = None,
) -> InspectionService:
    """Wire an InspectionService from configuration.

    Args:
        config: Engine configuration (defaults to ``EngineConfig.from_env()``).
        provider: Analysis provider. When omitted and analysis is enabled, the
            Strands-based evidence analyst is used.
        registry: Step registry. Defaults to the catalog named by the config,
            or the global registry.
    """
    config = config or EngineConfig.from_env()

    if registry is None:
        registry = (
            StepRegistry.from_yaml(config.methodology_file)
            if config.methodology_file
            else get_step_registry()
        )

    sessions, evidence = _build_repositories(config)

    dispatcher = None
    if config.analysis_enabled:
        if provider is None:
            # Lazy import: the agent SDK is only needed when analysis is dispatched
            from inspectflow.agents.worker_evidence_analyst import StrandsEvidenceAnalyst

            provider = StrandsEvidenceAnalyst(
                registry=registry, timeout_seconds=config.analysis_timeout_seconds
            )
        dispatcher = AnalysisDispatcher(provider, max_workers=config.analysis_max_workers)

    evidence_store = EvidenceStore(sessions, evidence, dispatcher=dispatcher)
    manager = SessionManager(sessions, evidence_store, registry=registry, config=config)

    logger.info(
        f"Inspection service ready: backend={config.storage_backend.value}, "
        f"catalog={registry.version}, analysis={'on' if dispatcher else 'off'}"
    )
    return InspectionService(manager, evidence_store, dispatcher=dispatcher)
