"""Block until the database in DATABASE_URL accepts connections (container start-up)."""
import logging
import os
import time

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError

logger = logging.getLogger("hotel_ledger.wait_for_db")


def wait_for_db(url: str, timeout_s: int = 60, interval_s: float = 1.0) -> None:
    engine = create_engine(url, pool_pre_ping=True)
    deadline = time.time() + timeout_s
    try:
        while True:
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                logger.info("database is ready")
                return
            except OperationalError as e:
                if time.time() > deadline:
                    logger.error("timed out after %ss waiting for database: %s", timeout_s, e)
                    raise
                time.sleep(interval_s)
    finally:
        engine.dispose()


DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise SystemExit("DATABASE_URL is not set")
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = "postgresql+psycopg2://" + DATABASE_URL[len("postgres://"):]

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
wait_for_db(DATABASE_URL, timeout_s=int(os.getenv("DB_WAIT_TIMEOUT", "60")))
