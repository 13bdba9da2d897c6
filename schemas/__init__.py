"""
Pydantic schemas for data validation and serialization.

Schemas:
    outbox: SideEffectCreate (enqueue input) and SideEffectResponse
    api: API endpoint request/response schemas

Usage:
    from schemas.outbox import SideEffectCreate
    from schemas.api import OutboxStatsResponse

Example:
    effect = SideEffectCreate(
        effect_type="sqs",
        event_type="invoice.created",
        aggregate_type="invoice",
        aggregate_id="inv_123",
        payload={"queueName": "billing", "eventType": "invoice.created", "message": {}},
        idempotency_key="invoice.created:inv_123",
    )
"""

from schemas.outbox import SideEffectCreate, SideEffectResponse

__all__ = [
    "SideEffectCreate",
    "SideEffectResponse",
]
