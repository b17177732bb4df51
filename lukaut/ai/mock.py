"""Offline provider returning a fixed set of findings.

Used in development and tests. ``analysis`` and ``error`` can be replaced
to script a different response.
"""

from __future__ import annotations

import copy

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.ai.provider import (
    AIError,
    AnalysisResult,
    ImageAnalysisRequest,
    PotentialViolation,
    RegulationMatchRequest,
    SuggestedRegulation,
    UsageInfo,
)

logger = structlog.get_logger(__name__)

MOCK_MODEL = "mock-ai-v1"

CANNED_ANALYSIS = AnalysisResult(
    violations=[
        PotentialViolation(
            description="Worker not wearing hard hat in construction zone",
            location="Center-left of image, near scaffolding",
            bounding_box={"x": 0.25, "y": 0.30, "width": 0.15, "height": 0.25},
            confidence="high",
            category="Personal Protective Equipment",
            severity="serious",
            suggested_regulations=["1926.100(a)", "1926.100(b)"],
        ),
        PotentialViolation(
            description="Scaffolding appears to lack proper guardrails",
            location="Right side of image, upper platform",
            bounding_box={"x": 0.60, "y": 0.15, "width": 0.30, "height": 0.40},
            confidence="medium",
            category="Fall Protection",
            severity="critical",
            suggested_regulations=["1926.451(g)(1)", "1926.451(g)(4)"],
        ),
        PotentialViolation(
            description="Construction materials stored near edge without barriers",
            location="Bottom right corner",
            bounding_box={"x": 0.70, "y": 0.75, "width": 0.20, "height": 0.15},
            confidence="medium",
            category="Housekeeping",
            severity="other",
            suggested_regulations=["1926.250(a)(1)"],
        ),
    ],
    general_observations=(
        "Active construction site with multiple workers. Scaffolding is prominently featured. "
        "Overall site appears moderately organized but has several safety concerns."
    ),
    image_quality_notes=(
        "Image quality is good with clear visibility. "
        "Adequate lighting and resolution for safety analysis."
    ),
    usage=UsageInfo(model=MOCK_MODEL, input_tokens=1250, output_tokens=850, cost_cents=5, duration_ms=250),
)

CANNED_MATCHES = [
    SuggestedRegulation(
        standard_number="1926.501(b)(1)",
        title="Fall protection - Unprotected sides and edges",
        category="Fall Protection",
        relevance_score=0.95,
        explanation="Highly relevant for fall hazards at elevated work surfaces",
        is_primary=True,
    ),
    SuggestedRegulation(
        standard_number="1926.451(g)(1)",
        title="Scaffolding - Guardrail systems",
        category="Scaffolding",
        relevance_score=0.88,
        explanation="Applies to scaffolding guardrail requirements",
    ),
]


class MockProvider:
    def __init__(self) -> None:
        self.analysis: AnalysisResult = CANNED_ANALYSIS
        self.matches: list[SuggestedRegulation] = CANNED_MATCHES
        self.error: AIError | None = None
        self.requests: list[ImageAnalysisRequest] = []
        self.match_requests: list[RegulationMatchRequest] = []

    async def analyze_image(self, request: ImageAnalysisRequest) -> AnalysisResult:
        self.requests.append(request)
        logger.debug("mock_analyze_image", image_id=str(request.image_id), size=len(request.image_data))
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.analysis)

    async def match_regulations(
        self, session: AsyncSession, request: RegulationMatchRequest
    ) -> list[SuggestedRegulation]:
        self.match_requests.append(request)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.matches[: request.max_results])
