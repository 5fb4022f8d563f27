"""
Structured logging for ClientDesk.

Every event carries the correlation id of the current CLI invocation and,
once a user is selected, the id of the owner whose data is touched. Events
that already name an owner keep their own value. Development environments
render through rich; every other environment writes one JSON object per line
to stderr, leaving stdout to command output.
"""

import logging
import sys
import uuid
from typing import Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

CONSOLE_ENVIRONMENTS = ("development", "dev", "local")

_correlation_id: Optional[str] = None
_owner_id: Optional[str] = None


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set (or generate) the correlation id of this invocation."""
    global _correlation_id
    _correlation_id = correlation_id or str(uuid.uuid4())[:8]
    return _correlation_id


def get_correlation_id() -> Optional[str]:
    return _correlation_id


def set_owner_id(owner_id: Optional[str]) -> None:
    """Owner id stamped on every following event; None stops stamping."""
    global _owner_id
    _owner_id = owner_id or None


def get_owner_id() -> Optional[str]:
    return _owner_id


def clear_log_context() -> None:
    global _correlation_id, _owner_id
    _correlation_id = None
    _owner_id = None


def add_request_context(logger, method_name, event_dict):
    """structlog processor adding the correlation and owner ids."""
    if _correlation_id:
        event_dict.setdefault("correlation_id", _correlation_id)
    if _owner_id:
        event_dict.setdefault("owner_id", _owner_id)
    return event_dict


def uses_console(environment: Optional[str]) -> bool:
    return (environment or "").strip().lower() in CONSOLE_ENVIRONMENTS


def setup_logging(debug: bool = False, environment: Optional[str] = "production") -> str:
    """
    Configure structlog and the standard library root logger.

    Args:
        debug: Log at DEBUG instead of INFO; also lets httpx log each request
        environment: ``ENVIRONMENT`` value selecting the renderer

    Returns:
        "console" or "json", the renderer in use
    """
    level = logging.DEBUG if debug else logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        add_request_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]

    if uses_console(environment):
        renderer = "console"
        processors += [
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(
                colors=True, exception_formatter=structlog.dev.rich_traceback
            ),
        ]
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler], force=True)
    else:
        renderer = "json"
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
        logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr, force=True)

    # httpx reports every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    return renderer
