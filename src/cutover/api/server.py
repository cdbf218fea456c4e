"""FastAPI approval webhook and read-only status endpoints.

Reviewers can approve or deny a pending attempt over HTTP instead of the
CLI; both write the same decision files the orchestrator polls.

Run with::

    CUTOVER_STATE_DIR=/var/lib/cutover uvicorn cutover.api.server:app
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI, HTTPException, Request

from cutover import __version__
from cutover.api.models import (
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    PendingApprovalsResponse,
)
from cutover.backends.local import FileApprovalChannel
from cutover.config import STATE_DIR_ENV
from cutover.state import StateDir

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

router = APIRouter()


def _state(request: Request) -> StateDir:
    return request.app.state.cutover


def _channel(request: Request) -> FileApprovalChannel:
    return request.app.state.approvals


# =========================================================================
# Health
# =========================================================================


@router.get("/health", tags=["health"])
def health_check(request: Request) -> dict[str, Any]:
    """Service health check."""
    return {
        "status": "ok",
        "version": __version__,
        "uptime_seconds": round(time.time() - request.app.state.started_at, 1),
    }


# =========================================================================
# Targets & attempts
# =========================================================================


@router.get("/targets/{target_id}", tags=["targets"])
def get_target(target_id: str, request: Request) -> dict[str, Any]:
    """Canonical active slot, current lease and recent attempts for a target."""
    status = _state(request).target_status(target_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Target '{target_id}' not found")
    return status


@router.get("/attempts/{attempt_id}", tags=["attempts"])
def get_attempt(attempt_id: str, request: Request) -> dict[str, Any]:
    """Full archived record of one deployment attempt."""
    attempt = _state(request).attempts.load(attempt_id)
    if attempt is None:
        raise HTTPException(status_code=404, detail=f"Attempt '{attempt_id}' not found")
    return attempt.to_dict()


# =========================================================================
# Approvals
# =========================================================================


@router.get("/approvals/pending", tags=["approvals"], response_model=PendingApprovalsResponse)
def list_pending(request: Request) -> PendingApprovalsResponse:
    """Approval requests still awaiting a decision."""
    pending = _channel(request).pending()
    return PendingApprovalsResponse(approvals=pending, count=len(pending))


@router.post("/approvals/{attempt_id}", tags=["approvals"], response_model=ApprovalDecisionResponse)
def decide(attempt_id: str, body: ApprovalDecisionRequest, request: Request) -> ApprovalDecisionResponse:
    """Approve or deny a pending attempt."""
    channel = _channel(request)
    pending = channel.request_for(attempt_id)
    if pending is None:
        raise HTTPException(status_code=404, detail=f"No approval request for attempt '{attempt_id}'")
    existing = channel.decision_for(attempt_id)
    if existing is not None:
        raise HTTPException(status_code=409, detail=f"Attempt '{attempt_id}' already {existing.value}")

    channel.decide(attempt_id, body.approved, reviewer=body.reviewer, comment=body.comment)
    decision = "approved" if body.approved else "denied"
    logger.info(
        "Attempt %s %s by %s via API", attempt_id, decision, body.reviewer or "anonymous",
        extra={"event": "approval_decision", "attempt_id": attempt_id},
    )
    return ApprovalDecisionResponse(
        attempt_id=attempt_id,
        target_id=str(pending.get("target_id", "")),
        decision=decision,
        reviewer=body.reviewer,
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app.state.started_at = time.time()
    yield


def create_app(state_dir: str | Path | None = None) -> FastAPI:
    """Create the FastAPI application serving ``state_dir``.

    Args:
        state_dir: cutover state directory. Defaults to ``$CUTOVER_STATE_DIR``
            or ``.cutover``.
    """
    root = Path(state_dir or os.environ.get(STATE_DIR_ENV) or ".cutover")
    application = FastAPI(
        title="cutover API",
        description="Approval webhook and status for blue/green cutovers",
        version=__version__,
        lifespan=_lifespan,
    )
    state = StateDir.open(root)
    application.state.cutover = state
    application.state.approvals = FileApprovalChannel(state.approvals_dir)
    application.state.started_at = time.time()
    application.include_router(router)
    return application


app = create_app()
