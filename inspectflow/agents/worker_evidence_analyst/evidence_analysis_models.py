"""Structured output model for the evidence analyst agent."""

from pydantic import BaseModel, Field

from inspectflow.evidence.models import AIAnalysis


class EvidenceAnalysisOutput(BaseModel):
    """Verdict on one piece of evidence.

    This model is used with Strands structured_output_model to ensure
    the agent returns properly formatted, validated output.
    """

    is_valid: bool = Field(
        description="True only if the evidence is relevant to the step and of usable quality"
    )
    confidence: float = Field(
        ge=0.0,
        le=1.0,
        description="Certainty of the is_valid verdict, from 0.0 to 1.0",
    )
    findings: list[str] = Field(
        default_factory=list,
        description="1-5 short factual observations about damage or evidence quality",
    )

    def to_analysis(self) -> AIAnalysis:
        return AIAnalysis(
            is_valid=self.is_valid,
            confidence=self.confidence,
            findings=[f.strip() for f in self.findings if f.strip()],
        )
