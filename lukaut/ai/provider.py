"""AI provider interface.

A provider looks at one site photo and reports potential OSHA violations,
and suggests regulations for a violation description. ``get_provider``
builds the configured provider once per process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.config import get_config

logger = structlog.get_logger(__name__)

MAX_IMAGE_BYTES = 20 * 1024 * 1024
SUPPORTED_CONTENT_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
DEFAULT_MAX_MATCHES = 10

# Error kinds
RATE_LIMITED = "rate_limited"
INVALID_IMAGE = "invalid_image"
CONTENT_POLICY = "content_policy"
TIMEOUT = "timeout"
UNAVAILABLE = "unavailable"
UNAUTHORIZED = "unauthorized"

RETRYABLE_KINDS = frozenset({RATE_LIMITED, TIMEOUT, UNAVAILABLE})


class AIError(Exception):
    """Provider failure. ``retryable`` failures are worth another job attempt."""

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


@dataclass(slots=True)
class ImageAnalysisRequest:
    image_data: bytes
    content_type: str
    context: str | None = None
    image_id: UUID | None = None
    inspection_id: UUID | None = None
    user_id: UUID | None = None


@dataclass(slots=True)
class PotentialViolation:
    description: str
    severity: str
    confidence: str
    category: str | None = None
    location: str | None = None
    bounding_box: dict | None = None
    suggested_regulations: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UsageInfo:
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_cents: int = 0
    duration_ms: int = 0


@dataclass(slots=True)
class AnalysisResult:
    violations: list[PotentialViolation] = field(default_factory=list)
    general_observations: str | None = None
    image_quality_notes: str | None = None
    usage: UsageInfo | None = None


@dataclass(slots=True)
class RegulationMatchRequest:
    description: str
    category: str | None = None
    max_results: int = DEFAULT_MAX_MATCHES


@dataclass(slots=True)
class SuggestedRegulation:
    standard_number: str
    title: str
    category: str
    relevance_score: float
    explanation: str | None = None
    is_primary: bool = False
    regulation_id: UUID | None = None


class AIProvider(Protocol):
    async def analyze_image(self, request: ImageAnalysisRequest) -> AnalysisResult:
        ...

    async def match_regulations(
        self, session: AsyncSession, request: RegulationMatchRequest
    ) -> list[SuggestedRegulation]:
        ...


def validate_image(data: bytes, content_type: str) -> None:
    if not data:
        raise AIError(INVALID_IMAGE, "image data is empty")
    if len(data) > MAX_IMAGE_BYTES:
        raise AIError(INVALID_IMAGE, f"image exceeds {MAX_IMAGE_BYTES // (1024 * 1024)}MB")
    if content_type not in SUPPORTED_CONTENT_TYPES:
        raise AIError(INVALID_IMAGE, f"unsupported image type: {content_type}")


def estimate_cost_cents(input_tokens: int, output_tokens: int) -> int:
    """Cost in cents from the configured per-million-token prices, rounded up."""
    ai = get_config().ai
    micro_cents = input_tokens * ai.input_cost_per_mtok + output_tokens * ai.output_cost_per_mtok
    return -(-micro_cents // 1_000_000)


_provider: AIProvider | None = None


def get_provider() -> AIProvider:
    """Provider selected by ``AI_PROVIDER``, created on first use."""
    global _provider
    if _provider is None:
        ai = get_config().ai
        if ai.provider == "openai":
            from lukaut.ai.openai_vision import OpenAIVisionProvider

            _provider = OpenAIVisionProvider(api_key=ai.api_key, model=ai.model, timeout=ai.timeout_seconds)
        else:
            from lukaut.ai.mock import MockProvider

            _provider = MockProvider()
        logger.info("ai_provider_initialized", provider=ai.provider)
    return _provider


def set_provider(provider: AIProvider | None) -> None:
    """Override the provider (tests); None rebuilds from config on next use."""
    global _provider
    _provider = provider
