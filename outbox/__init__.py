"""
Transactional outbox for tenant side effects.

Modules:
    service: enqueue side effects idempotently, per-aggregate listing, stats
    handlers: payload validation and dispatch per side effect type
    worker: claim / process / finalise loop for one tenant
    scheduler: periodic drain across the configured tenants
"""

from outbox.service import SideEffectService
from outbox.handlers import InvalidPayloadError, default_handlers, make_handler, validate_payload
from outbox.worker import OUTBOX_CLAIM_CONFIG, DrainResult, OutboxWorker

__all__ = [
    "SideEffectService",
    "InvalidPayloadError",
    "default_handlers",
    "make_handler",
    "validate_payload",
    "OUTBOX_CLAIM_CONFIG",
    "DrainResult",
    "OutboxWorker",
]
