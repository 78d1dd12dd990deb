import logging

import structlog
from structlog.contextvars import merge_contextvars

from medrecords.core.observability.context_vars import (
    get_patient_id,
    get_subject_id,
    get_submission_id,
)
from medrecords.core.observability.correlation import CorrelationLogFilter, get_correlation_id
from medrecords.core.settings import settings


def add_context_vars(_, __, event_dict):
    """
    Processor to inject ContextVars into the log event.
    """
    cid = get_correlation_id()
    if cid:
        event_dict["correlation_id"] = cid

    trace = {
        "subject_id": get_subject_id(),
        "patient_id": get_patient_id(),
        "submission_id": get_submission_id(),
    }

    existing_trace = event_dict.get("trace", {})
    if isinstance(existing_trace, dict):
        trace.update(existing_trace)

    event_dict["trace"] = {k: v for k, v in trace.items() if v is not None}

    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")

    return event_dict


def configure_structlog():
    """
    Configures structlog to render canonical JSON through stdlib logging.
    """
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationLogFilter())

    # Non-JSON logs (uvicorn startup, etc.)
    standard_formatter = logging.Formatter(
        " [%(asctime)s] [%(levelname)s] [trace_id=%(correlation_id)s] %(name)s: %(message)s"
    )
    handler.setFormatter(standard_formatter)

    resolved_level = str(settings.LOG_LEVEL or "INFO").upper()
    log_level = getattr(logging, resolved_level, logging.INFO)

    logging.basicConfig(format="%(message)s", level=log_level, handlers=[handler])

    processors = [
        merge_contextvars,
        add_context_vars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
