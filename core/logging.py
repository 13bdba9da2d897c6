"""
Logging configuration

Every record carries the active tenant (``-`` outside a tenant scope) so the
worker and request logs of different tenants can be told apart.
"""

import logging
import sys
from core.config import settings
from core.tenant_context import tenant_context

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(tenant)s | %(name)s | %(message)s"


class TenantLogFilter(logging.Filter):
    """Stamp ``record.tenant`` from the tenant context variable"""
    
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "tenant"):
            record.tenant = tenant_context.current_tenant_id() or "-"
        return True


def setup_logging():
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(TenantLogFilter())
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler],
        force=True,
    )
    
    # SQL echo and per-run scheduler chatter drown out the outbox logs
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    
    logging.getLogger(__name__).info(f"Logging configured at {settings.LOG_LEVEL} level")
