"""Admin API for the callable whitelist and rule snapshot.

Routes (mounted under /admin in main.py):
  GET  /whitelist    — current whitelist text, entries and pending rejections
  POST /whitelist    — replace the whole whitelist
  POST /approve-all  — whitelist every pending rejection
  POST /approve      — whitelist one name
  GET  /rules        — summary of the published rule snapshot

Every route depends on require_admin(), evaluated per request. A missing
capability aborts with 403 before the handler runs. A whitelist write that
did not land returns 500: success is reported only after the file was
replaced on disk.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from callgate.admin.auth import require_admin
from callgate.admin.limiter import ADMIN_MUTATION_RATE_LIMIT, limiter
from callgate.errors import PersistenceError
from callgate.gate import AdminGate
from callgate.utils.logger import clear_request_id, get_logger, set_request_id

logger = get_logger(__name__)


async def bind_request_id(request: Request) -> AsyncIterator[None]:
    """Tag every log line of this admin request with a request_id."""
    set_request_id(request.headers.get("X-Request-ID") or uuid.uuid4().hex)
    try:
        yield
    finally:
        clear_request_id()


router = APIRouter(
    tags=["admin"],
    dependencies=[Depends(bind_request_id), Depends(require_admin)],
)


# ─── Request Models ───────────────────────────────────────────────────────────


class SubmitWhitelistRequest(BaseModel):
    """Request body for POST /admin/whitelist."""

    whitelist: str = ""
    """Full new whitelist, one qualified type name per line."""

    params: dict[str, str] = Field(default_factory=dict)
    """Form-style selections; every key ``class:<name>`` adds ``<name>``."""


class ApproveRequest(BaseModel):
    """Request body for POST /admin/approve."""

    value: str
    """Qualified type name to whitelist."""


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _gate(request: Request) -> AdminGate:
    gate = getattr(request.app.state, "gate", None)
    if gate is None:
        raise HTTPException(status_code=503, detail="Gate is starting up")
    return gate


def _not_saved(exc: PersistenceError) -> HTTPException:
    logger.error("Whitelist update failed", error=exc.message)
    return HTTPException(status_code=500, detail="Whitelist update was not saved")


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.get("/whitelist")
async def get_whitelist(request: Request) -> dict:
    """Current whitelist and the callables waiting for approval."""
    gate = _gate(request)
    return {
        "whitelist": gate.whitelist.text,
        "entries": gate.whitelist.entries(),
        "rejected": gate.rejected_names(),
    }


@router.post("/whitelist")
@limiter.limit(ADMIN_MUTATION_RATE_LIMIT)
async def submit_whitelist(body: SubmitWhitelistRequest, request: Request) -> dict:
    """Replace the whole whitelist.

    The text is normalized to end with a newline and every ``class:<name>``
    param is appended as an extra line before the atomic replace.
    """
    gate = _gate(request)
    try:
        count = await asyncio.to_thread(gate.submit_whitelist, body.whitelist, list(body.params))
    except PersistenceError as exc:
        raise _not_saved(exc) from exc

    logger.info("Whitelist replaced via admin API", entries=count)
    return {"status": "ok", "entries": count}


@router.post("/approve-all")
@limiter.limit(ADMIN_MUTATION_RATE_LIMIT)
async def approve_all(request: Request) -> dict:
    """Whitelist every currently rejected callable."""
    gate = _gate(request)
    try:
        approved = await asyncio.to_thread(gate.approve_all)
    except PersistenceError as exc:
        raise _not_saved(exc) from exc
    return {"status": "ok", "approved": approved}


@router.post("/approve")
@limiter.limit(ADMIN_MUTATION_RATE_LIMIT)
async def approve(body: ApproveRequest, request: Request) -> dict:
    """Whitelist one callable by name."""
    name = body.value.strip()
    if not name:
        raise HTTPException(status_code=400, detail="value must be a non-empty type name")

    gate = _gate(request)
    try:
        await asyncio.to_thread(gate.approve, name)
    except PersistenceError as exc:
        raise _not_saved(exc) from exc
    return {"status": "ok", "approved": name}


@router.get("/rules")
async def get_rules(request: Request) -> dict:
    """The published rule snapshot, in evaluation order."""
    gate = _gate(request)
    rules = gate.rules
    return {
        "source": rules.source,
        "published_at": (
            gate.rules_published_at.isoformat() if gate.rules_published_at else None
        ),
        "rules": [rule.to_dict() for rule in rules],
    }
