import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from mysql.connector import pooling

from .config import Settings
from .models import ExecutionFailure, ExecutionOutcome, ExecutionSuccess

logger = logging.getLogger(__name__)

# Columns of every user table in the current schema, in ordinal order
INFORMATION_SCHEMA_QUERY = """
    SELECT TABLE_NAME, COLUMN_NAME, DATA_TYPE, IS_NULLABLE, COLUMN_DEFAULT
    FROM INFORMATION_SCHEMA.COLUMNS
    WHERE TABLE_SCHEMA = DATABASE()
    ORDER BY TABLE_NAME, ORDINAL_POSITION;
"""


def json_safe(value):
    """Binary cells become text: UTF-8 when it decodes, else 0x-prefixed hex."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return "0x" + raw.hex()
    return value


class Database:
    """
    Thin wrapper over a DB-API connection source.

    `connect` returns a fresh (or pooled) connection; closing it hands it
    back to the pool. `catalog_query` must yield rows of
    (table, column, type, is_nullable 'YES'/'NO', default).
    """

    def __init__(
        self,
        connect: Callable[[], Any],
        catalog_query: str = INFORMATION_SCHEMA_QUERY,
    ):
        self._connect = connect
        self.catalog_query = catalog_query

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        pool = pooling.MySQLConnectionPool(
            pool_name="opsbot_pool",
            pool_size=settings.db_pool_size,
            pool_reset_session=True,
            host=settings.db_host,
            port=settings.db_port,
            user=settings.db_user,
            password=settings.db_pass,
            database=settings.db_name,
            autocommit=True,
            charset="utf8mb4",
            use_pure=True,
        )
        logger.info("MySQL connection pool created (size=%d)", settings.db_pool_size)
        return cls(pool.get_connection)

    @contextmanager
    def connection(self) -> Iterator[Any]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def fetch_all(self, query: str) -> tuple[list[str], list[tuple]]:
        """Run a query and return (column names, raw row tuples)."""
        with self.connection() as conn:
            cur = conn.cursor()
            try:
                cur.execute(query)
                if cur.description is None:
                    return [], []
                cols = [d[0] for d in cur.description]
                return cols, list(cur.fetchall())
            finally:
                cur.close()

    def ping(self) -> None:
        self.fetch_all("SELECT 1 AS health_check")

    def execute(self, query: str) -> ExecutionOutcome:
        """
        Runs model-generated SQL exactly as given.
        Any driver error becomes an ExecutionFailure; nothing is retried.
        """
        logger.info("Executing SQL: %s", query)
        try:
            with self.connection() as conn:
                cur = conn.cursor()
                try:
                    cur.execute(query)
                    if cur.description is None:
                        # statements without a result set report affected rows
                        return ExecutionSuccess(rows=[], row_count=max(cur.rowcount, 0), field_names=[])
                    cols = [d[0] for d in cur.description]
                    rows = [{c: json_safe(v) for c, v in zip(cols, r)} for r in cur.fetchall()]
                finally:
                    cur.close()
        except Exception as e:
            logger.warning("SQL execution failed: %s", e)
            return ExecutionFailure(message=str(e), attempted_query=query)

        logger.info("Query returned %d rows", len(rows))
        return ExecutionSuccess(rows=rows, row_count=len(rows), field_names=cols)
