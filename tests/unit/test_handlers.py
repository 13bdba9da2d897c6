import uuid
import pytest
from unittest.mock import AsyncMock
from core.exceptions import NonRetryableError
from models.base import SideEffectType
from models.outbox import SideEffectOutbox
from outbox.handlers import InvalidPayloadError, default_handlers, make_handler, validate_payload


def outbox_row(effect_type, payload):
    return SideEffectOutbox(
        id=uuid.uuid4(),
        tenant_id="tenant-a",
        effect_type=effect_type,
        event_type="order.created",
        aggregate_type="order",
        aggregate_id="42",
        payload=payload,
    )


@pytest.mark.parametrize("effect_type,payload", [
    (SideEffectType.SQS, {"queueName": "orders", "eventType": "created", "message": {"id": 42}}),
    (SideEffectType.SNS, {"topicName": "orders", "eventType": "created", "message": "hi"}),
    (SideEffectType.EMAIL, {"to": "a@example.com", "subject": "Hi", "body": "Hello"}),
    (SideEffectType.AUDIT, {"action": "order.created"}),
])
def test_valid_payloads(effect_type, payload):
    assert validate_payload(effect_type, payload) == payload


def test_missing_keys_are_reported():
    with pytest.raises(InvalidPayloadError) as exc_info:
        validate_payload(SideEffectType.EMAIL, {"to": "a@example.com"})
    
    assert exc_info.value.context["missing"] == ["subject", "body"]
    assert isinstance(exc_info.value, NonRetryableError)


@pytest.mark.asyncio
async def test_handler_dispatches_validated_payload():
    dispatch = AsyncMock()
    handler = make_handler(SideEffectType.AUDIT, dispatch)
    row = outbox_row(SideEffectType.AUDIT, {"action": "login"})
    
    await handler(row)
    
    dispatch.assert_awaited_once_with(row, {"action": "login"})


@pytest.mark.asyncio
async def test_handler_does_not_dispatch_invalid_payload():
    dispatch = AsyncMock()
    handler = make_handler(SideEffectType.SQS, dispatch)
    
    with pytest.raises(InvalidPayloadError):
        await handler(outbox_row(SideEffectType.SQS, {"queueName": "orders"}))
    dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_default_handlers_cover_every_type():
    handlers = default_handlers()
    
    assert set(handlers) == set(SideEffectType)
    # default dispatch only logs
    await handlers[SideEffectType.AUDIT](outbox_row(SideEffectType.AUDIT, {"action": "login"}))
