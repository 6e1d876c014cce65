"""SQLModel database engine and session management."""

import logging

from sqlalchemy import inspect
from sqlmodel import SQLModel, create_engine, Session

from strategy_sync.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)

# Live-stat columns added after the first strategy schema shipped
_STRATEGY_COLUMN_DDL = {
    "real_avg_conviction_score": "FLOAT",
    "latest_trade_timestamp": "TIMESTAMP",
    "opted_out_date": "TIMESTAMP",
}


def _run_migrations(bind=None):
    """Add strategy columns that older databases are missing."""
    from sqlalchemy import text

    bind = bind or engine
    inspector = inspect(bind)

    if "strategy" not in inspector.get_table_names():
        return

    columns = {col["name"] for col in inspector.get_columns("strategy")}
    for name, ddl in _STRATEGY_COLUMN_DDL.items():
        if name in columns:
            continue
        logger.info(f"Migrating: adding strategy.{name}")
        with bind.connect() as conn:
            conn.execute(text(f"ALTER TABLE strategy ADD COLUMN {name} {ddl}"))
            conn.commit()


def create_db_and_tables(bind=None):
    """Create all tables. Called on startup."""
    import strategy_sync.models  # noqa: F401  (registers tables on the metadata)

    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    _run_migrations(bind)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
