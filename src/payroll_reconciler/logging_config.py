"""Logging setup for the API and CLI entry points."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once.

    Library modules only create ``logging.getLogger(__name__)`` loggers;
    handlers are attached here by whichever entry point runs.
    """
    root = logging.getLogger()
    if any(getattr(h, "_payroll_reconciler", False) for h in root.handlers):
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._payroll_reconciler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level)

    # SQLAlchemy echoes every statement at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
