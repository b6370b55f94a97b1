"""Field guidance shown to operators for each methodology step.

Purely informational: nothing here affects gating or scoring.
"""

from dataclasses import dataclass

from inspectflow.workflow.step_registry import MethodologyStep


@dataclass(frozen=True)
class StepGuidance:
    tips: tuple[str, ...]
    common_mistakes: tuple[str, ...]
    best_practices: tuple[str, ...]

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "tips": list(self.tips),
            "common_mistakes": list(self.common_mistakes),
            "best_practices": list(self.best_practices),
        }


_GUIDANCE: dict[MethodologyStep, StepGuidance] = {
    MethodologyStep.WEATHER_VERIFICATION: StepGuidance(
        tips=(
            "Verify storm events from multiple weather sources",
            "Document hail size and wind speed reports",
            "Note the date(s) of reported weather events",
        ),
        common_mistakes=(
            "Using only one weather data source",
            "Not correlating weather events with damage patterns",
        ),
        best_practices=(
            "Include NOAA, local weather stations, and radar data",
            "Create a timeline of weather events and damage discovery",
        ),
    ),
    MethodologyStep.THERMAL_IMAGING: StepGuidance(
        tips=(
            "Thermal scans work best with at least 10°F temperature differential",
            "Morning or evening provides better thermal contrast",
            "Look for moisture intrusion patterns and thermal bridging",
        ),
        common_mistakes=(
            "Scanning during peak sun hours when surfaces are uniformly hot",
            "Not allowing the camera to calibrate to ambient temperature",
        ),
        best_practices=(
            "Always capture a corresponding visual photo for each thermal image",
            "Document the emissivity settings used",
        ),
    ),
    MethodologyStep.TERRESTRIAL_WALK: StepGuidance(
        tips=(
            "Walk the entire perimeter of the property",
            "Document all four sides of the building",
            "Note any visible damage from ground level before going to the roof",
        ),
        common_mistakes=(
            "Forgetting to document the property address in photos",
            "Missing the overall property context",
        ),
        best_practices=(
            "Include a timestamp and address marker in your first photo",
            "Capture the property from multiple angles",
        ),
    ),
    MethodologyStep.TEST_SQUARES: StepGuidance(
        tips=(
            "Select representative areas for test square analysis",
            "Document the square footage and location of each test area",
            "Count hail hits or damage per square accurately",
        ),
        common_mistakes=(
            "Selecting only damaged areas without control areas",
            "Inconsistent square sizing",
        ),
        best_practices=(
            "Use standardized 10x10 foot test squares",
            "Document multiple test squares across different roof sections",
        ),
    ),
    MethodologyStep.SOFT_METALS: StepGuidance(
        tips=(
            "Check vents, flashings, gutters, and downspouts",
            "Look for dents, dings, and deformation",
            "Compare damaged vs undamaged soft metal areas",
        ),
        common_mistakes=(
            "Missing soft metal damage on inaccessible areas",
            "Confusing manufacturing defects with hail damage",
        ),
        best_practices=(
            "Photograph with proper scale references",
            "Document all soft metal locations on the property",
        ),
    ),
    MethodologyStep.MOISTURE_TESTING: StepGuidance(
        tips=(
            "Focus on areas identified as anomalies in thermal scanning",
            "Check around penetrations, seams, and edge details",
            "Document moisture meter readings with photos",
        ),
        common_mistakes=(
            "Only testing the visible wet spots",
            "Not calibrating the moisture meter for material type",
        ),
        best_practices=(
            "Test in a grid pattern for comprehensive coverage",
            "Record readings numerically, not just presence/absence",
        ),
    ),
    MethodologyStep.CORE_SAMPLES: StepGuidance(
        tips=(
            "Extract cores from representative damaged and undamaged areas",
            "Document core location precisely",
            "Measure and photograph each layer of the core",
        ),
        common_mistakes=(
            "Not sealing the core extraction site properly",
            "Extracting cores without property owner permission",
        ),
        best_practices=(
            "Label cores immediately with location and date",
            "Preserve cores for potential laboratory analysis",
        ),
    ),
    MethodologyStep.REPORT_ASSEMBLY: StepGuidance(
        tips=(
            "Review all captured evidence before generating",
            "Ensure consistent naming and organization",
            "Verify all required sections are complete",
        ),
        common_mistakes=(
            "Generating report before reviewing evidence quality",
            "Missing key findings in executive summary",
        ),
        best_practices=(
            "Use the AI assistant to review completeness",
            "Preview report before final generation",
        ),
    ),
}


def get_step_guidance(step: MethodologyStep) -> StepGuidance:
    """Return the operator guidance for a step.

    Raises:
        ValueError: If the step has no guidance entry.
    """
    if step not in _GUIDANCE:
        raise ValueError(f"No guidance for step: {step!r}")
    return _GUIDANCE[step]
