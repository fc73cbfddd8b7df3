#!/usr/bin/env python3
"""
Wait for the database, apply migrations, seed rooms and directory users, then exec uvicorn.
"""
import logging
import os
import sys

# 1) Wait for DB
import wait_for_db  # noqa: F401

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from hotel_ledger.core.config import settings
from hotel_ledger.core.logging_config import configure_logging

configure_logging()
logger = logging.getLogger("hotel_ledger.start_api")

# 2) Migrations with the same DATABASE_URL as the app
alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")
logger.info("migrations applied")

# 3) Seed through a fresh engine so nothing cached during Alembic's env load is reused
from hotel_ledger.seed import run as run_seed  # noqa: E402

seed_engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
seed_db = sessionmaker(autocommit=False, autoflush=False, bind=seed_engine)()
try:
    run_seed(seed_db)
finally:
    seed_db.close()
    seed_engine.dispose()

# 4) Replace this process with uvicorn
port = os.getenv("PORT", "8000")
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "hotel_ledger.main:app", "--host", "0.0.0.0", "--port", port],
)
