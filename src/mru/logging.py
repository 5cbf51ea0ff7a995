"""stderr logging for mru.

Progress and diagnostics go to stderr through structlog so that the batch
summary printed on stdout stays machine-readable. Worker threads bind the
repository they are processing, and every line logged while that binding is
active carries a ``repo`` field.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(level: str, json_output: bool = False) -> None:
    """Route stdlib and structlog loggers to one stderr handler.

    Unknown level names fall back to INFO rather than failing the command.
    """
    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


@contextmanager
def repo_context(repo: str) -> Iterator[None]:
    """Tag log lines emitted inside the block with *repo*."""
    with structlog.contextvars.bound_contextvars(repo=repo):
        yield
