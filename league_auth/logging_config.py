from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - Stdlib logging only; uvicorn already configures handlers.
    - Sets the level for the ``league_auth`` package; child loggers inherit it.
    - Set `LEAGUE_AUTH_LOG_LEVEL=DEBUG` to see individual authorization denials.
    """

    normalized = level.upper()
    logging.getLogger("league_auth").setLevel(normalized)
    logging.getLogger("league_auth").propagate = True
