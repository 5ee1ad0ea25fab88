"""
PostgreSQL client with connection pooling and explicit transactions.

Uses psycopg2 with ThreadedConnectionPool. Outside a transaction each call
checks out a connection, runs one statement and commits. Inside
transaction() every call on the same thread/context reuses one connection,
and the whole block commits or rolls back together.
"""

import logging
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

# Global adapter registration flag
_adapters_registered = False

# Connection bound to the transaction active in this context, if any
_transaction_conn: ContextVar[Any] = ContextVar("postgres_transaction_conn", default=None)


class PostgresClient:
    """
    PostgreSQL client with pooled connections and a unit-of-work primitive.

    Usage:
        db = PostgresClient(database_url)

        # Single statement, autocommitted
        rows = db.execute("SELECT * FROM invoices WHERE id = %s", (invoice_id,))

        # Several statements, one commit
        with db.transaction():
            db.execute("INSERT INTO payments ...", (...))
            db.execute("UPDATE invoices SET paid_amount_cents = ...", (...))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=2,
                    maxconn=20,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _adapters_registered
                if not _adapters_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    psycopg2.extras.register_uuid()
                    _adapters_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Get a pooled connection, returned to the pool on exit."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")
            yield conn

        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(self):
        """
        Run a block of statements as one transaction.

        Nested calls join the outermost transaction.
        """
        if _transaction_conn.get() is not None:
            yield
            return

        with self.get_connection() as conn:
            token = _transaction_conn.set(conn)
            try:
                yield
                conn.commit()
            except BaseException:
                conn.rollback()
                logger.debug("Transaction rolled back")
                raise
            finally:
                _transaction_conn.reset(token)

    @property
    def in_transaction(self) -> bool:
        return _transaction_conn.get() is not None

    @contextmanager
    def _cursor(self, cursor_factory=None):
        """Cursor on the active transaction's connection, or an autocommitted one."""
        conn = _transaction_conn.get()
        if conn is not None:
            with conn.cursor(cursor_factory=cursor_factory) as cur:
                yield cur
            return

        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=cursor_factory) as cur:
                    yield cur
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = self._convert_params(params)
        with self._cursor(psycopg2.extras.RealDictCursor) as cur:
            cur.execute(query, params)
            if cur.description:
                return [dict(row) for row in cur.fetchall()]
            return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        params = self._convert_params(params)
        with self._cursor() as cur:
            cur.execute(query, params)
            result = cur.fetchone()
            return result[0] if result else None

    def execute_many(self, query: str, params_list: List[Tuple]) -> None:
        """Execute one statement for each parameter tuple."""
        if not params_list:
            return
        converted = [self._convert_params(params) for params in params_list]
        with self._cursor() as cur:
            psycopg2.extras.execute_batch(cur, query, converted)

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
