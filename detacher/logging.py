"""structlog wiring for both modes.

Everything goes through the stdlib root logger, so uvicorn's own records
(server mode runs it with ``log_config=None``) are rendered by the same
formatter as detacher's events.  The default stream is stderr: in milter
mode stdout carries the rewritten message.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

# Applied to structlog events and, via ``foreign_pre_chain``, to plain
# stdlib records such as uvicorn's.
_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.format_exc_info,
]


def _renderer(json: bool) -> structlog.types.Processor:
    if json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(
    *,
    json: bool = True,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and the root logger.

    Parameters
    ----------
    json:
        JSON lines when *True* (the default), key=value console output
        otherwise.
    level:
        Root log level name, case-insensitive.
    stream:
        Destination for log lines; ``sys.stderr`` when omitted.
    """
    structlog.configure(
        processors=[
            *_PRE_CHAIN,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_PRE_CHAIN,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json),
        ],
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
