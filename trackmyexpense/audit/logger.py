"""
Audit Logger

DESIGN DECISION: Every balance-affecting action is logged.
This provides:
1. Traceability of every balance movement
2. The exact reason an atomic write was cancelled
3. Correlation ids to join all log lines of one engine call

The audit logger:
- Is async so callers await it like any other collaborator
- Never raises into the business flow
- Writes structured (JSON) records through structlog
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from trackmyexpense.models.audit import AuditEvent, AuditSeverity


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog over the stdlib logging bridge."""
    logging.getLogger().setLevel(getattr(logging, log_level.upper(), logging.INFO))
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(message)s", level=log_level.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """Central audit logging service."""

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self._logger = logger or structlog.get_logger("trackmyexpense.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the record could not be emitted.
        """
        log_dict = event.to_log_dict()
        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except (ValueError, TypeError, OSError) as e:
            # A broken handler must not fail a write that already committed
            logging.getLogger(__name__).error("audit logging failed: %s", e)
            return False
        return True


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a request and pass it through every call.
    """
    return uuid4()
