"""Vision analysis through the OpenAI chat completions API."""

from __future__ import annotations

import base64
import json
import time
from typing import Any

import openai
import structlog
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.ai.provider import (
    CONTENT_POLICY,
    INVALID_IMAGE,
    RATE_LIMITED,
    TIMEOUT,
    UNAUTHORIZED,
    UNAVAILABLE,
    AIError,
    AnalysisResult,
    ImageAnalysisRequest,
    PotentialViolation,
    RegulationMatchRequest,
    SuggestedRegulation,
    UsageInfo,
    estimate_cost_cents,
    validate_image,
)
from lukaut.models import Confidence, ViolationSeverity
from lukaut.regulations.service import search_regulations

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "gpt-4o"
MAX_OUTPUT_TOKENS = 4096

SYSTEM_PROMPT = """You are an experienced OSHA construction safety inspector reviewing a photo from a construction site.
Identify potential violations of 29 CFR 1926 in these categories:
1. Fall Protection (1926.500): guardrails, safety nets, personal fall arrest, unprotected edges
2. Scaffolding (1926.450): assembly, guardrails, planking, access, stability
3. Ladders (1926.1050): use, positioning, extension, defects
4. Personal Protective Equipment (1926.100-106): hard hats, eye protection, gloves, footwear, high-visibility clothing
5. Electrical Safety (1926.400): exposed wiring, grounding, hazardous locations
6. Housekeeping (1926.25): material storage, debris, slip and trip hazards, blocked exits
7. Excavations (1926.650): protective systems, cave-in protection, access and egress
8. Heavy Equipment (1926.600): operator safety, proximity to workers, backing hazards
9. Material Handling (1926.250): storage, rigging, hoisting

For each potential violation give a specific description, where it is in the photo, an optional
bounding box normalized to 0-1 (x, y, width, height), a confidence of "high" (90%+), "medium" (60-90%)
or "low" (30-60%), one of the categories above, a severity of "critical" (imminent danger), "serious"
(likely severe injury), "other" or "recommendation" (best practice), and the OSHA standard numbers it
breaches, for example "1926.501(b)(1)".

Only report what the visible evidence supports. Note it when image quality limits the assessment.

Respond with a single JSON object:
{"violations": [{"description": "", "location": "", "bounding_box": {"x": 0.0, "y": 0.0, "width": 0.0, "height": 0.0},
"confidence": "high|medium|low", "category": "", "severity": "critical|serious|other|recommendation",
"suggested_regulations": ["1926.XXX"]}], "general_observations": "", "image_quality_notes": ""}"""


def build_user_prompt(context: str | None) -> str:
    prompt = "Analyze this construction site photo for OSHA safety violations."
    if context:
        prompt += f"\n\nNotes from the inspector:\n{context}"
    return prompt


def _bounding_box(raw: Any) -> dict | None:
    if not isinstance(raw, dict):
        return None
    box = {}
    for key in ("x", "y", "width", "height"):
        value = raw.get(key)
        if not isinstance(value, (int, float)) or not 0 <= value <= 1:
            return None
        box[key] = float(value)
    # A zero-size box means the model had no location
    if box["width"] == 0 or box["height"] == 0:
        return None
    return box


def parse_analysis(content: str) -> AnalysisResult:
    """Turn the model's JSON reply into an AnalysisResult, dropping malformed entries."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AIError(UNAVAILABLE, f"provider returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise AIError(UNAVAILABLE, "provider returned an unexpected response shape")

    severities = {s.value for s in ViolationSeverity}
    confidences = {c.value for c in Confidence}
    violations = []
    for item in data.get("violations") or []:
        if not isinstance(item, dict) or not str(item.get("description") or "").strip():
            continue
        severity = str(item.get("severity") or "").lower()
        confidence = str(item.get("confidence") or "").lower()
        regulations = item.get("suggested_regulations") or []
        violations.append(
            PotentialViolation(
                description=str(item["description"]).strip(),
                severity=severity if severity in severities else ViolationSeverity.OTHER.value,
                confidence=confidence if confidence in confidences else Confidence.LOW.value,
                category=item.get("category") or None,
                location=item.get("location") or None,
                bounding_box=_bounding_box(item.get("bounding_box")),
                suggested_regulations=[str(r).strip() for r in regulations if str(r).strip()],
            )
        )

    return AnalysisResult(
        violations=violations,
        general_observations=data.get("general_observations") or None,
        image_quality_notes=data.get("image_quality_notes") or None,
    )


def translate_error(exc: openai.OpenAIError) -> AIError:
    # Timeout subclasses the connection error, so it is checked first
    if isinstance(exc, openai.APITimeoutError):
        return AIError(TIMEOUT, "provider request timed out")
    if isinstance(exc, openai.RateLimitError):
        return AIError(RATE_LIMITED, "provider rate limit exceeded")
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AIError(UNAUTHORIZED, "provider rejected the API key")
    if isinstance(exc, openai.BadRequestError):
        if getattr(exc, "code", None) == "content_policy_violation":
            return AIError(CONTENT_POLICY, "image was refused by the provider's content policy")
        return AIError(INVALID_IMAGE, f"provider rejected the image: {exc}")
    return AIError(UNAVAILABLE, f"provider unavailable: {exc}")


class OpenAIVisionProvider:
    """Analyzes photos with a vision-capable chat model."""

    def __init__(self, api_key: str | None, model: str | None = None, timeout: float = 120.0):
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required when AI_PROVIDER=openai")
        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model or DEFAULT_MODEL

    async def analyze_image(self, request: ImageAnalysisRequest) -> AnalysisResult:
        validate_image(request.image_data, request.content_type)
        encoded = base64.b64encode(request.image_data).decode("ascii")
        started = time.monotonic()

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": build_user_prompt(request.context)},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{request.content_type};base64,{encoded}"},
                            },
                        ],
                    },
                ],
                response_format={"type": "json_object"},
                temperature=0.1,
                max_tokens=MAX_OUTPUT_TOKENS,
            )
        except openai.OpenAIError as exc:
            error = translate_error(exc)
            logger.warning("ai_request_failed", kind=error.kind, image_id=str(request.image_id), error=str(exc))
            raise error from exc

        result = parse_analysis(response.choices[0].message.content or "")
        input_tokens = response.usage.prompt_tokens if response.usage else 0
        output_tokens = response.usage.completion_tokens if response.usage else 0
        result.usage = UsageInfo(
            model=self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_cents=estimate_cost_cents(input_tokens, output_tokens),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "image_analyzed",
            image_id=str(request.image_id),
            violations=len(result.violations),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        return result

    async def match_regulations(
        self, session: AsyncSession, request: RegulationMatchRequest
    ) -> list[SuggestedRegulation]:
        """Full-text search over the regulation library; the best hit is primary."""
        page = await search_regulations(session, request.description, page_size=request.max_results)
        return [
            SuggestedRegulation(
                standard_number=match.regulation.standard_number,
                title=match.regulation.title,
                category=match.regulation.category,
                relevance_score=match.rank,
                is_primary=index == 0,
                regulation_id=match.regulation.id,
            )
            for index, match in enumerate(page.items)
        ]
