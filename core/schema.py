"""
core/schema.py -- Table definitions, engine factory, and schema-version gate.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py and
catalog/models.py remain the authoritative domain representation. Swapping
SQLite for PostgreSQL is a connection string change.

One Engine (and therefore one connection pool) is created at process start by
make_engine() and handed to every store. Stores never create engines.

Schema version:
  init_schema() creates missing tables and stamps SCHEMA_VERSION into the
  single-row schema_meta table. check_schema() runs once at startup and raises
  SchemaVersionError if the stamp is missing or different. There is no
  per-query fallback for missing tables or columns -- an out-of-date database
  stops the process instead of silently degrading role checks.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    false,
    inspect,
    select,
)
from sqlalchemy.engine import Engine

from core.errors import SchemaVersionError

logger = logging.getLogger("tourmarket.schema")

SCHEMA_VERSION = 4

# Largest primary key the database can hold (signed 64-bit). Boundaries reject
# larger ids before they reach the driver.
MAX_ROW_ID = 2**63 - 1

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # Unique across deleted rows too: a soft-deleted account keeps its email.
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text),
    Column("display_name", String(255), nullable=False),
    Column("active_role", String(20), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("is_deleted", Integer, nullable=False, server_default="0"),
    Column("deleted_at", String(32)),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("role", String(20), nullable=False),
    UniqueConstraint("user_id", "role", name="uq_user_role"),
)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("title", String(255), nullable=False),
    Column("destination", String(255), nullable=False),
    Column("category", String(100), nullable=False, server_default=""),
    Column("description", Text, nullable=False, server_default=""),
    Column("cover_image_url", Text),
    Column("net_price", Float, nullable=False, server_default="0"),
    Column("duration", Float, nullable=False, server_default="1.0"),
    Column("has_shopping", Boolean, nullable=False, server_default=false()),
    Column("has_ticket", Boolean, nullable=False, server_default=false()),
    Column("ticket_price", Float),
    Column("status", String(30), nullable=False, server_default="draft"),
    Column("rejection_reason", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("is_deleted", Integer, nullable=False, server_default="0"),
    Column("deleted_at", String(32)),
)

# Agency-private trip plans. timeline is a JSON list of days; rows are hard
# deleted, unlike users and products.
itineraries = Table(
    "itineraries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("timeline", JSON, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

schema_meta = Table(
    "schema_meta",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("version", Integer, nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create the process-wide Engine for db_url."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def init_schema(engine: Engine) -> None:
    """Create missing tables and stamp the current schema version.

    Idempotent. Refuses to restamp a database that already carries a different
    version -- upgrading is a migration, not an init.
    """
    metadata.create_all(engine)
    with engine.begin() as conn:
        current = conn.execute(select(schema_meta.c.version).where(schema_meta.c.id == 1)).scalar()
        if current is None:
            conn.execute(schema_meta.insert().values(id=1, version=SCHEMA_VERSION))
            logger.info("Schema initialized at version %d", SCHEMA_VERSION)
        elif current != SCHEMA_VERSION:
            raise SchemaVersionError(
                f"Database is at schema version {current}, expected {SCHEMA_VERSION}.",
            )


def check_schema(engine: Engine) -> int:
    """Verify the database carries SCHEMA_VERSION. Returns the version found.

    Raises SchemaVersionError if the stamp table is missing, empty, or at a
    different version.
    """
    if not inspect(engine).has_table("schema_meta"):
        raise SchemaVersionError("Database schema is not initialized. Run `python main.py init-db`.")
    with engine.connect() as conn:
        version = conn.execute(select(schema_meta.c.version).where(schema_meta.c.id == 1)).scalar()
    if version is None:
        raise SchemaVersionError("Database schema is not initialized. Run `python main.py init-db`.")
    if version != SCHEMA_VERSION:
        raise SchemaVersionError(f"Database is at schema version {version}, expected {SCHEMA_VERSION}.")
    return version
