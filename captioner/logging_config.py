# ─────────────────────────────────────────────────────────────────────────────
# Logging Configuration — structlog over stdlib logging
# ─────────────────────────────────────────────────────────────────────────────
# structlog events and plain stdlib records (uvicorn, httpx, openai) all end
# in one stdout handler, rendered as JSON lines or as a dev console.
# ─────────────────────────────────────────────────────────────────────────────


import logging
import sys

import structlog
from structlog.types import Processor

# Client libraries that log each outbound request at INFO. Their lines
# would echo upstream URLs and, for data-URI uploads, image payloads.
_QUIETED_LOGGERS = ("httpx", "httpcore", "openai")


def _pre_chain() -> list[Processor]:
    """Processors every record passes through before rendering."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def _render_chain(json_output: bool) -> list[Processor]:
    if json_output:
        # Tracebacks become structured fields instead of a multi-line string.
        # Frame locals stay out: they hold request bodies and image payloads.
        tracebacks = structlog.processors.ExceptionRenderer(
            structlog.tracebacks.ExceptionDictTransformer(show_locals=False)
        )
        return [tracebacks, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog and the root stdlib logger.

    Idempotent: the root handler list is replaced on every call, so
    create_app() can run more than once in one process (tests do).

    Note: structlog >=25.4 is required for Python 3.13.4+ compatibility.
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    # foreign_pre_chain applies only to stdlib records; structlog events
    # already ran pre_chain inside structlog.configure().
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_render_chain(json_output),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level.upper())

    for name in _QUIETED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
