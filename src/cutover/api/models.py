"""Pydantic request/response models for the cutover REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ApprovalDecisionRequest(BaseModel):
    """A reviewer's decision on a pending attempt."""

    approved: bool
    reviewer: str = Field(default="", max_length=200)
    comment: str = Field(default="", max_length=2000)


class ApprovalDecisionResponse(BaseModel):
    attempt_id: str
    target_id: str = ""
    decision: str
    reviewer: str = ""


class PendingApprovalsResponse(BaseModel):
    approvals: list[dict[str, Any]] = Field(default_factory=list)
    count: int = 0
