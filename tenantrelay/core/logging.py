from __future__ import annotations

import logging

from tenantrelay.core.config import get_settings


def configure_logging(*, level: str | int | None = None, force: bool = False) -> None:
    # Initialise the root logger once for worker processes; tests pass force=True to reconfigure.
    resolved = level if level is not None else get_settings().log_level
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        force=force,
    )
