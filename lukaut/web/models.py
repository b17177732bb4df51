"""Pydantic request/response models for the JSON endpoints.

Usage:
    from lukaut.web.models import BatchStatusRequest

    @router.post("/inspections/{inspection_id}/violations/batch-status")
    async def batch_status(inspection_id: UUID, body: BatchStatusRequest):
        ...
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class BatchStatusRequest(BaseModel):
    """Set the review status of several violations at once."""

    violation_ids: list[UUID] = Field(min_length=1, max_length=500)
    status: Literal["pending", "confirmed", "rejected"]


class BatchStatusResponse(BaseModel):
    updated: int
    status: str


class ReportUrlResponse(BaseModel):
    url: str
    format: str
    expires_in: int


class HealthResponse(BaseModel):
    status: Literal["ok", "error"]
    database: Literal["connected", "disconnected"]
    detail: str | None = None
