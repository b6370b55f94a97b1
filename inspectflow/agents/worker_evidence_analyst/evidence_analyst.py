"""Evidence analyst: a Strands agent that judges captured evidence.

Implements ``AnalysisProvider`` so the dispatcher can hand it evidence on a
worker thread. A fresh agent is built per call because a Strands ``Agent``
keeps conversation state and must not be shared across threads.
"""

import logging
from collections.abc import Callable
from pathlib import PurePosixPath

from strands import Agent

from inspectflow.agents.utils.model_provider import create_model
from inspectflow.agents.utils.prompt_loader import load_agent_prompt
from inspectflow.agents.worker_evidence_analyst.evidence_analysis_models import (
    EvidenceAnalysisOutput,
)
from inspectflow.config import ANALYSIS_TIMEOUT_SECONDS, AssetKind
from inspectflow.evidence.analysis import AnalysisProvider
from inspectflow.evidence.models import AIAnalysis, EvidenceAsset
from inspectflow.workflow.step_guidance import get_step_guidance
from inspectflow.workflow.step_registry import StepRegistry, get_step_registry

logger = logging.getLogger(__name__)

# Maps a content_ref to raw bytes, or None when the content is unavailable.
ContentLoader = Callable[[str], bytes | None]

_IMAGE_FORMATS = {"jpg": "jpeg", "jpeg": "jpeg", "png": "png", "gif": "gif", "webp": "webp"}


def _image_format(content_ref: str) -> str:
    suffix = PurePosixPath(content_ref.split("?", 1)[0]).suffix.lower().lstrip(".")
    return _IMAGE_FORMATS.get(suffix, "jpeg")


class StrandsEvidenceAnalyst(AnalysisProvider):
    """Analysis provider backed by an LLM agent with structured output.

    Args:
        content_loader: Optional loader for the evidence bytes. Without one,
            the agent judges metadata only.
        registry: Step registry used to describe the step to the model.
        model_id: Optional model override (otherwise resolved from env).
        timeout_seconds: Read timeout for the model call.
    """

    name = "evidence_analyst"

    def __init__(
        self,
        content_loader: ContentLoader | None = None,
        registry: StepRegistry | None = None,
        model_id: str | None = None,
        timeout_seconds: float = ANALYSIS_TIMEOUT_SECONDS,
    ) -> None:
        self.content_loader = content_loader
        self.registry = registry or get_step_registry()
        self.model_id = model_id
        self.timeout_seconds = timeout_seconds

    def _build_agent(self) -> Agent:
        return Agent(
            name=self.name,
            system_prompt=load_agent_prompt("evidence_analyst"),
            model=create_model(model_id=self.model_id, read_timeout=self.timeout_seconds),
            structured_output_model=EvidenceAnalysisOutput,
        )

    def build_task(self, asset: EvidenceAsset) -> str:
        """Describe the evidence and its step for the model."""
        requirement = self.registry.requirement_for(asset.step)
        guidance = get_step_guidance(asset.step)
        tips = "\n".join(f"- {tip}" for tip in guidance.tips)

        location = (
            f"{asset.geolocation.latitude:.5f}, {asset.geolocation.longitude:.5f}"
            if asset.geolocation
            else "not recorded"
        )

        return f"""Judge this evidence for the step "{requirement.display_name}".

Step purpose: {requirement.description}
What inspectors are told to capture:
{tips}

Evidence kind: {asset.kind.value}
Captured at: {asset.captured_at.isoformat()}
GPS location: {location}
Content reference: {asset.content_ref}
"""

    def _build_prompt(self, asset: EvidenceAsset) -> str | list[dict]:
        task = self.build_task(asset)
        if self.content_loader is None or asset.kind is AssetKind.AUDIO:
            return task

        content = self.content_loader(asset.content_ref)
        if not content:
            logger.warning(f"No content available for evidence {asset.id}, judging metadata only")
            return task

        return [
            {"text": task},
            {"image": {"format": _image_format(asset.content_ref), "source": {"bytes": content}}},
        ]

    def analyze(self, asset: EvidenceAsset) -> AIAnalysis | None:
        agent = self._build_agent()
        result = agent(self._build_prompt(asset))

        output = getattr(result, "structured_output", None)
        if isinstance(output, EvidenceAnalysisOutput):
            return output.to_analysis()

        logger.warning(f"No structured analysis output for evidence {asset.id}")
        return None
