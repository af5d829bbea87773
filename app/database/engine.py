import logging
import sqlite3

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from app.config import Settings, get_settings


app_settings: Settings = get_settings()
logger = logging.getLogger(__name__)

_SQLITE_BUSY_TIMEOUT_SECONDS = 30
_SQLITE_BUSY_TIMEOUT_MS = _SQLITE_BUSY_TIMEOUT_SECONDS * 1000

_db_url = make_url(app_settings.DATABASE_URL)
is_sqlite = _db_url.get_backend_name() == "sqlite"
is_sqlite_memory = False
if is_sqlite:
    sqlite_db = _db_url.database
    is_sqlite_memory = sqlite_db in (None, "", ":memory:")
    if not is_sqlite_memory and _db_url.query.get("mode") == "memory":
        is_sqlite_memory = True

connect_args = {}
engine_kwargs: dict[str, object] = dict(pool_pre_ping=True)
if is_sqlite:
    connect_args = {"check_same_thread": False, "timeout": _SQLITE_BUSY_TIMEOUT_SECONDS}
    if is_sqlite_memory:
        engine_kwargs.update(poolclass=StaticPool)

engine = create_engine(
    app_settings.DATABASE_URL,
    connect_args=connect_args,
    **engine_kwargs,
)

if is_sqlite:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={_SQLITE_BUSY_TIMEOUT_MS}")
            if not is_sqlite_memory:
                try:
                    cursor.execute("PRAGMA journal_mode=WAL")
                    cursor.execute("PRAGMA synchronous=NORMAL")
                except sqlite3.DatabaseError:
                    pass
        finally:
            cursor.close()


_NATURAL_KEY_COLUMNS = ("item_id", "date", "organization_id", "branch_id")
_NATURAL_KEY_INDEXES = {
    "opening_stock": ("uq_opening_stock_natural_key", "uq_opening_stock_branchless_key"),
    "closing_stock": ("uq_closing_stock_natural_key", "uq_closing_stock_branchless_key"),
}


def _escape_sqlite_identifier(value: str) -> str:
    return value.replace('"', '""')


def _sqlite_table_exists(conn, table_name: str) -> bool:
    escaped_table = _escape_sqlite_identifier(table_name)
    # noinspection SqlNoDataSourceInspection
    result = conn.exec_driver_sql(f'PRAGMA table_info("{escaped_table}")').fetchall()
    return bool(result)


def _get_sqlite_index_columns(conn, index_name: str):
    escaped_index = _escape_sqlite_identifier(index_name)
    # noinspection SqlNoDataSourceInspection
    result = conn.exec_driver_sql(
        f'PRAGMA index_info("{escaped_index}")'
    ).mappings()
    return [row["name"] for row in result]


def _has_natural_key_unique(conn, table_name: str) -> bool:
    escaped_table = _escape_sqlite_identifier(table_name)
    # noinspection SqlNoDataSourceInspection
    indexes = conn.exec_driver_sql(
        f'PRAGMA index_list("{escaped_table}")'
    ).mappings().all()
    for index in indexes:
        if not index.get("unique") or index.get("partial"):
            continue
        index_name = index.get("name")
        if not index_name:
            continue
        if set(_get_sqlite_index_columns(conn, index_name)) == set(_NATURAL_KEY_COLUMNS):
            return True
    return False


def _first_duplicate(conn, table_name: str, *, branchless: bool):
    escaped_table = _escape_sqlite_identifier(table_name)
    where = "WHERE branch_id IS NULL " if branchless else "WHERE branch_id IS NOT NULL "
    # noinspection SqlNoDataSourceInspection
    return conn.exec_driver_sql(
        f'SELECT item_id, date FROM "{escaped_table}" {where}'
        "GROUP BY item_id, date, organization_id, branch_id HAVING COUNT(*) > 1 LIMIT 1"
    ).fetchone()


def _create_unique_index(conn, table_name: str, index_name: str, *, branchless: bool) -> None:
    duplicate = _first_duplicate(conn, table_name, branchless=branchless)
    if duplicate:
        logger.warning(
            "Skipping unique index %s on %s due to duplicates (item %s on %s).",
            index_name,
            table_name,
            duplicate[0],
            duplicate[1],
        )
        return
    escaped_table = _escape_sqlite_identifier(table_name)
    escaped_index = _escape_sqlite_identifier(index_name)
    if branchless:
        ddl = (
            f'CREATE UNIQUE INDEX IF NOT EXISTS "{escaped_index}" '
            f'ON "{escaped_table}"(item_id, date, organization_id) WHERE branch_id IS NULL'
        )
    else:
        ddl = (
            f'CREATE UNIQUE INDEX IF NOT EXISTS "{escaped_index}" '
            f'ON "{escaped_table}"(item_id, date, organization_id, branch_id)'
        )
    # noinspection SqlNoDataSourceInspection
    conn.exec_driver_sql(ddl)


def ensure_sqlite_schema():
    """Add the natural-key unique indexes to SQLite files created without them."""
    if not is_sqlite:
        return
    with engine.connect() as conn:
        with conn.begin():
            for table_name, (key_index, branchless_index) in _NATURAL_KEY_INDEXES.items():
                if not _sqlite_table_exists(conn, table_name):
                    continue
                if not _has_natural_key_unique(conn, table_name):
                    _create_unique_index(conn, table_name, key_index, branchless=False)
                _create_unique_index(conn, table_name, branchless_index, branchless=True)
