"""
Outbox endpoints: enqueue side effects and inspect them for the active tenant
"""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db
from outbox.service import SideEffectService
from schemas.api import AggregateSideEffectsResponse, EnqueueResponse, OutboxStatsResponse
from schemas.outbox import SideEffectCreate, SideEffectResponse
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/outbox", tags=["Outbox"])


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")


@router.post("", response_model=EnqueueResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_side_effect(
    effect: SideEffectCreate,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """
    Enqueue a side effect.
    
    201 when a new row was written, 200 when idempotency_key matched an
    earlier submission (that row is returned unchanged).
    """
    request_id = _request_id(request)
    logger.info(f"[{request_id}] POST /outbox - {effect.effect_type} {effect.event_type}")
    
    result = await SideEffectService(db).create_side_effect(effect)
    if not result.inserted:
        response.status_code = status.HTTP_200_OK
    
    return EnqueueResponse(
        outcome=result.outcome.value,
        side_effect=SideEffectResponse.model_validate(result.record),
        request_id=request_id,
    )


@router.get("/stats", response_model=OutboxStatsResponse)
async def outbox_stats(request: Request, db: AsyncSession = Depends(get_db)):
    request_id = _request_id(request)
    service = SideEffectService(db)
    counts = await service.get_stats()
    
    return OutboxStatsResponse(
        tenant_id=service.store.require_tenant_id("outbox_stats"),
        counts=counts,
        total=sum(counts.values()),
        request_id=request_id,
    )


@router.get("/aggregates/{aggregate_type}/{aggregate_id}", response_model=AggregateSideEffectsResponse)
async def aggregate_side_effects(
    aggregate_type: str,
    aggregate_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Side effects recorded for one aggregate, oldest first"""
    rows = await SideEffectService(db).find_by_aggregate(aggregate_type, aggregate_id)
    return AggregateSideEffectsResponse(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        items=[SideEffectResponse.model_validate(row) for row in rows],
        request_id=_request_id(request),
    )
