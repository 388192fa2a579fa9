import logging
import time
from pathlib import Path

from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

from shop.config import settings
from shop.models.database import Base, _normalize_database_url, engine
import shop.models  # noqa: F401 - register models

logger = logging.getLogger(__name__)

# Tables the settlement path reads and writes; checked after every init.
SETTLEMENT_TABLES = ("orders", "order_items", "products", "payments", "payment_audit_entries", "stock_decrements")


def wait_for_db(retries: int, retry_delay_seconds: int) -> None:
    """Block until the database answers ``SELECT 1`` or retries run out."""
    attempt = 0
    while True:
        attempt += 1
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError as exc:
            logger.warning("Database not reachable yet (attempt %s/%s): %s", attempt, retries, exc)
            if attempt >= retries:
                raise RuntimeError(
                    f"Database is unreachable after {retries} attempts. "
                    "Check DATABASE_URL and ensure the DB server is running."
                ) from exc
            time.sleep(retry_delay_seconds)
            continue

        logger.info("Database connection established on attempt %s", attempt)
        return


def check_settlement_tables() -> None:
    existing = set(inspect(engine).get_table_names())
    missing = [table for table in SETTLEMENT_TABLES if table not in existing]
    if missing:
        raise RuntimeError(f"Database schema is incomplete, missing tables: {', '.join(missing)}")


def init_db():
    wait_for_db(
        retries=settings.DB_CONNECT_RETRIES,
        retry_delay_seconds=settings.DB_CONNECT_RETRY_DELAY_SECONDS,
    )
    if settings.DATABASE_URL.startswith("sqlite"):
        # Tests and local runs; no migration history.
        Base.metadata.create_all(bind=engine)
    else:
        run_migrations()
    check_settlement_tables()


def run_migrations() -> None:
    """Upgrade the schema to the newest Alembic revision."""
    from alembic import command
    from alembic.config import Config

    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError(f"Alembic configuration not found at {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(project_root / "alembic"))
    config.set_main_option("sqlalchemy.url", _normalize_database_url(settings.DATABASE_URL))
    logger.info("Applying database migrations")
    command.upgrade(config, "head")
