"""Structured audit logging for control-plane mutations.

Every link termination, database deletion and deployment submission is
emitted as a JSON event so operators can reconstruct what a run touched.
"""

import logging
import sys
from typing import Optional

import structlog

AUDIT_LOGGER_NAME = "data_refresh.audit"


def configure_audit_logging(audit_file: Optional[str] = None) -> None:
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    audit_logger.handlers.clear()
    audit_logger.propagate = False
    audit_logger.setLevel(logging.INFO)

    if audit_file:
        handler: logging.Handler = logging.FileHandler(audit_file)
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_audit_logger(**initial_values: str) -> structlog.stdlib.BoundLogger:
    """Return the audit logger bound to run-level values (destination, namespace)."""
    return structlog.get_logger(AUDIT_LOGGER_NAME).bind(**initial_values)
