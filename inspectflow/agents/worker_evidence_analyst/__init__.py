"""Evidence analyst agent: judges whether captured evidence documents its step."""

from .evidence_analysis_models import EvidenceAnalysisOutput
from .evidence_analyst import StrandsEvidenceAnalyst

__all__ = ["EvidenceAnalysisOutput", "StrandsEvidenceAnalyst"]
