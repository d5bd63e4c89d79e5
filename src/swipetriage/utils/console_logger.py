from __future__ import annotations

import logging
import sys


def ensure_console_logger(
    logger: logging.Logger,
    handler_name: str,
    *,
    level: int = logging.INFO,
) -> logging.Handler:
    """Attach a stdout handler named *handler_name* to *logger* exactly once.

    A later call finds the handler by name, points it at the current
    ``sys.stdout`` and applies the new level, so switching to ``--verbose``
    never stacks duplicate handlers.
    """
    for handler in logger.handlers:
        if getattr(handler, "name", None) == handler_name:
            if isinstance(handler, logging.StreamHandler):
                # setStream() would flush the old stream, which may already be closed.
                handler.stream = sys.stdout
            handler.setLevel(level)
            logger.setLevel(level)
            return handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.name = handler_name
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
