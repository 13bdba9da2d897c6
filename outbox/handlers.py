"""
Side effect handlers.

A handler is an async callable taking the claimed SideEffectOutbox row. It
signals success by returning and failure by raising; raising a
NonRetryableError marks the row failed immediately instead of backing off.
Transports (SQS, SNS, SES, audit store) are wired in by the deployment; the
handlers here validate payloads and hand them to a dispatch callable.
"""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence
from core.exceptions import NonRetryableError
from models.base import SideEffectType
from models.outbox import SideEffectOutbox
import logging

logger = logging.getLogger(__name__)

Handler = Callable[[SideEffectOutbox], Awaitable[None]]
Dispatch = Callable[[SideEffectOutbox, Mapping[str, Any]], Awaitable[None]]

REQUIRED_PAYLOAD_KEYS: Dict[SideEffectType, Sequence[str]] = {
    SideEffectType.SQS: ("queueName", "eventType", "message"),
    SideEffectType.SNS: ("topicName", "eventType", "message"),
    SideEffectType.EMAIL: ("to", "subject", "body"),
    SideEffectType.AUDIT: ("action",),
}


class InvalidPayloadError(NonRetryableError):
    """Payload is missing required keys; retrying cannot fix it."""
    pass


def validate_payload(effect_type: SideEffectType, payload: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    payload = payload or {}
    missing = [key for key in REQUIRED_PAYLOAD_KEYS.get(effect_type, ()) if not payload.get(key)]
    if missing:
        raise InvalidPayloadError(
            f"Invalid {effect_type.value} payload: missing {', '.join(missing)}",
            context={"effect_type": effect_type.value, "missing": missing}
        )
    return payload


async def log_dispatch(row: SideEffectOutbox, payload: Mapping[str, Any]) -> None:
    """Dispatch that only logs; used when no transport is configured."""
    logger.info(
        f"Dispatching {SideEffectType(row.effect_type).value} side effect {row.id} "
        f"for {row.aggregate_type}:{row.aggregate_id} ({row.event_type})"
    )


def make_handler(effect_type: SideEffectType, dispatch: Dispatch = log_dispatch) -> Handler:
    """Handler that validates the payload for ``effect_type`` then dispatches it."""
    async def handle(row: SideEffectOutbox) -> None:
        payload = validate_payload(effect_type, row.payload)
        await dispatch(row, payload)
    
    return handle


def default_handlers(dispatchers: Optional[Mapping[SideEffectType, Dispatch]] = None) -> Dict[SideEffectType, Handler]:
    dispatchers = dispatchers or {}
    return {
        effect_type: make_handler(effect_type, dispatchers.get(effect_type, log_dispatch))
        for effect_type in SideEffectType
    }
