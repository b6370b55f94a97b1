"""Asynchronous dispatch of evidence to the AI analysis provider.

Attaching evidence never waits on analysis: the dispatcher hands the record
to a worker pool and returns immediately. When the provider produces a
judgment, the result is delivered through the same ``record_analysis`` path
an external callback would use. Provider failures are logged and leave the
evidence pending; they never touch session state.
"""

import concurrent.futures
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from inspectflow.config import ANALYSIS_MAX_WORKERS
from inspectflow.evidence.models import AIAnalysis, EvidenceAsset
from inspectflow.telemetry import operation_span, record_error

logger = logging.getLogger(__name__)

_TRANSIENT_INDICATORS = [
    "response ended prematurely",
    "connection reset",
    "connection aborted",
    "broken pipe",
    "timed out",
    "throttl",
    "service unavailable",
    "internal server error",
]

_MAX_RETRIES = 2
_RETRY_DELAY_SECONDS = 5.0


def is_transient_error(error: Exception) -> bool:
    """Check if an error looks like a transient provider/network failure.

    Walks the ``__cause__`` chain so errors wrapped by the agent SDK are
    classified by their root cause too.
    """
    parts = [str(error).lower()]
    cause = error.__cause__
    while cause:
        parts.append(str(cause).lower())
        cause = cause.__cause__
    combined = " ".join(parts)
    return any(indicator in combined for indicator in _TRANSIENT_INDICATORS)


class AnalysisProvider(ABC):
    """External judge of evidence validity."""

    name: str = "analysis-provider"

    @abstractmethod
    def analyze(self, asset: EvidenceAsset) -> AIAnalysis | None:
        """Judge one evidence record.

        Returns:
            The analysis, or None if the provider could not reach a verdict
            (the evidence then stays pending).
        """


ResultCallback = Callable[[str, AIAnalysis], Any]


class AnalysisDispatcher:
    """Runs provider calls on a thread pool and reports results back.

    Args:
        provider: The analysis provider to call.
        max_workers: Size of the worker pool.
        max_retries: Re-attempts after a transient provider error.
        retry_delay_seconds: Pause between re-attempts.
    """

    def __init__(
        self,
        provider: AnalysisProvider,
        max_workers: int = ANALYSIS_MAX_WORKERS,
        max_retries: int = _MAX_RETRIES,
        retry_delay_seconds: float = _RETRY_DELAY_SECONDS,
    ) -> None:
        self.provider = provider
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="evidence-analysis"
        )

    def submit(self, asset: EvidenceAsset, on_result: ResultCallback) -> concurrent.futures.Future:
        """Schedule analysis of an evidence record.

        Args:
            asset: The evidence to analyze (a snapshot; later changes are not seen).
            on_result: Called with ``(evidence_id, analysis)`` when a verdict lands.

        Returns:
            Future resolving to the analysis, or None if none was produced.
        """
        logger.debug(f"Dispatching evidence {asset.id} to {self.provider.name}")
        return self._executor.submit(self._run, asset, on_result)

    def _call_provider(self, asset: EvidenceAsset) -> AIAnalysis | None:
        for attempt in range(self.max_retries + 1):
            try:
                return self.provider.analyze(asset)
            except Exception as e:
                if attempt < self.max_retries and is_transient_error(e):
                    logger.warning(
                        "Analysis of %s transient error (attempt %d/%d): %s. Retrying in %ss...",
                        asset.id,
                        attempt + 1,
                        self.max_retries + 1,
                        e,
                        self.retry_delay_seconds,
                    )
                    time.sleep(self.retry_delay_seconds)
                    continue
                raise
        return None

    def _run(self, asset: EvidenceAsset, on_result: ResultCallback) -> AIAnalysis | None:
        start_time = time.time()
        with operation_span(
            "evidence.analyze",
            session_id=asset.session_id,
            **{"evidence.id": asset.id, "inspection.step": asset.step.value},
        ) as span:
            try:
                analysis = self._call_provider(asset)
            except Exception as e:
                record_error(span, e)
                logger.error(
                    f"Analysis of evidence {asset.id} failed; leaving it pending: {e}",
                    exc_info=True,
                    extra={"evidence_id": asset.id, "error_type": type(e).__name__},
                )
                return None

            if analysis is None:
                logger.warning(f"Provider returned no verdict for evidence {asset.id}")
                return None

            span.set_attribute("analysis.is_valid", analysis.is_valid)
            span.set_attribute("analysis.confidence", analysis.confidence)

            try:
                on_result(asset.id, analysis)
            except Exception as e:
                record_error(span, e)
                logger.error(f"Could not record analysis for evidence {asset.id}: {e}")
                return None

        logger.info(
            f"Evidence {asset.id} analyzed in {time.time() - start_time:.2f}s: "
            f"valid={analysis.is_valid}, confidence={analysis.confidence:.2f}"
        )
        return analysis

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
