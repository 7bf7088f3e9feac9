"""
questboard.__main__ — Entry point for ``python -m questboard``
==============================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (dashboard port, lifecycle tuning).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the admin API with uvicorn (blocking).
"""

from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from questboard.config import load_config
from questboard.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("questboard")


def main() -> None:
    """Bootstrap and run the Questboard admin API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    # 4. API (the app builds its own engine on startup).
    uvicorn.run(
        "questboard.api.main:app",
        host="0.0.0.0",
        port=cfg.dashboard_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
