"""PostgreSQL implementation of OrderStore. Schema: orders, order_executions (see _ensure_tables)."""

import asyncio
import logging
import math
import os
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from swap_engine.domain.order_state import OrderStatus, parse_status
from swap_engine.domain.types import ExecutionAttempt, Order, OrderPayload, RoutingDecision
from swap_engine.store.base import OrderStore

logger = logging.getLogger(__name__)


def _json_safe(obj: Any) -> Any:
    """Return a JSON-serializable copy (nan/inf -> None) so psycopg2 Json() and jsonb never fail."""
    if obj is None:
        return None
    if isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        if math.isfinite(obj):
            return obj
        return None
    if isinstance(obj, dict):
        return {k: _json_safe(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_json_safe(v) for v in obj]
    return str(obj)


def _get_conn_params(config: dict) -> dict:
    """Build connection params from store.postgres, with env overrides. DATABASE_URL wins when set."""
    dsn = config.get("dsn") or os.environ.get("DATABASE_URL")
    if dsn:
        return {"dsn": dsn}
    pg = config.get("postgres", config) or {}
    db = pg.get("database") or pg.get("db")
    return {
        "host": pg.get("host") or os.environ.get("PGHOST", "127.0.0.1"),
        "port": int(pg.get("port") or os.environ.get("PGPORT", "5432")),
        "dbname": db or os.environ.get("PGDATABASE", "swap_engine"),
        "user": pg.get("user") or os.environ.get("PGUSER", "swap_engine"),
        "password": pg.get("password") or os.environ.get("PGPASSWORD", ""),
    }


def _ensure_tables(conn) -> None:
    """Create orders and order_executions if not exist."""
    with conn.cursor() as cur:
        cur.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id text PRIMARY KEY,
                status text NOT NULL,
                payload jsonb NOT NULL,
                created_at timestamptz NOT NULL DEFAULT now(),
                updated_at timestamptz NOT NULL DEFAULT now()
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS orders_status_idx ON orders (status)")
        cur.execute("CREATE INDEX IF NOT EXISTS orders_created_at_idx ON orders (created_at DESC)")
        # attempt_number unique per order: a duplicate worker's insert is a no-op, never a second attempt
        cur.execute("""
            CREATE TABLE IF NOT EXISTS order_executions (
                id text PRIMARY KEY,
                order_id text NOT NULL REFERENCES orders (id),
                attempt_number integer NOT NULL,
                chosen_venue text,
                routing_decision jsonb,
                tx_hash text,
                execution_price double precision,
                failure_reason text,
                created_at timestamptz NOT NULL DEFAULT now(),
                UNIQUE (order_id, attempt_number)
            )
        """)
    conn.commit()


def _row_to_order(row: Dict[str, Any]) -> Order:
    status = parse_status(row["status"]) or row["status"]
    return Order(
        id=row["id"],
        status=status,
        payload=OrderPayload.from_dict(row["payload"]),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_attempt(row: Dict[str, Any]) -> ExecutionAttempt:
    decision = row.get("routing_decision")
    price = row.get("execution_price")
    return ExecutionAttempt(
        id=row["id"],
        order_id=row["order_id"],
        attempt_number=int(row["attempt_number"]),
        chosen_venue=row.get("chosen_venue"),
        routing_decision=RoutingDecision.from_dict(decision) if decision else None,
        tx_hash=row.get("tx_hash"),
        execution_price=float(price) if price is not None else None,
        failure_reason=row.get("failure_reason"),
        created_at=row.get("created_at"),
    )


class PostgreSQLOrderStore(OrderStore):
    """psycopg2 connection pool; each call runs one short transaction on a worker thread.

    Errors propagate to the caller (the orchestrator classifies them as retriable).
    """

    def __init__(self, config: dict):
        self._config = config
        params = _get_conn_params(config)
        pg = config.get("postgres") or {}
        self._pool = ThreadedConnectionPool(int(pg.get("pool_min") or 1), int(pg.get("pool_max") or 10), **params)
        with self._connection() as conn:
            _ensure_tables(conn)
        if "dsn" in params:
            logger.info("PostgreSQL order store connected (DATABASE_URL)")
        else:
            logger.info("PostgreSQL order store connected: %s@%s:%s/%s", params["user"], params["host"], params["port"], params["dbname"])

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        conn = self._pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    # --- sync implementations (run via asyncio.to_thread) ---

    def _create_order(self, order_id: str, payload: OrderPayload) -> Order:
        with self._connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                "INSERT INTO orders (id, status, payload) VALUES (%s, %s, %s) RETURNING *",
                (order_id, OrderStatus.PENDING.value, Json(_json_safe(payload.to_dict()))),
            )
            return _row_to_order(cur.fetchone())

    def _get_order(self, order_id: str) -> Optional[Order]:
        with self._connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("SELECT * FROM orders WHERE id = %s", (order_id,))
            row = cur.fetchone()
        return _row_to_order(row) if row is not None else None

    def _conditional_transition(self, order_id: str, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                "UPDATE orders SET status = %s, updated_at = now() WHERE id = %s AND status = %s",
                (OrderStatus(to_status).value, order_id, getattr(from_status, "value", from_status)),
            )
            return cur.rowcount == 1

    def _create_execution_attempt(self, order_id: str, attempt_number: int) -> Optional[ExecutionAttempt]:
        with self._connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO order_executions (id, order_id, attempt_number)
                VALUES (%s, %s, %s)
                ON CONFLICT (order_id, attempt_number) DO NOTHING
                RETURNING *
                """,
                (str(uuid.uuid4()), order_id, attempt_number),
            )
            row = cur.fetchone()
        return _row_to_attempt(row) if row is not None else None

    def _get_latest_execution_attempt(self, order_id: str) -> Optional[ExecutionAttempt]:
        with self._connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                "SELECT * FROM order_executions WHERE order_id = %s ORDER BY attempt_number DESC LIMIT 1",
                (order_id,),
            )
            row = cur.fetchone()
        return _row_to_attempt(row) if row is not None else None

    def _count_execution_attempts(self, order_id: str) -> int:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM order_executions WHERE order_id = %s", (order_id,))
            return int(cur.fetchone()[0])

    def _update_once(self, sql: str, params: tuple) -> bool:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.rowcount == 1

    def _get_order_executions(self, order_id: str) -> List[ExecutionAttempt]:
        with self._connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("SELECT * FROM order_executions WHERE order_id = %s ORDER BY attempt_number", (order_id,))
            return [_row_to_attempt(r) for r in cur.fetchall()]

    def _get_recent_orders(self, limit: int) -> List[Order]:
        with self._connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("SELECT * FROM orders ORDER BY created_at DESC LIMIT %s", (limit,))
            return [_row_to_order(r) for r in cur.fetchall()]

    def _check_connection(self) -> bool:
        try:
            with self._connection() as conn, conn.cursor() as cur:
                cur.execute("SELECT 1")
            return True
        except psycopg2.Error as e:
            logger.warning("PostgreSQL check_connection failed: %s", e)
            return False

    # --- OrderStore ---

    async def create_order(self, order_id: str, payload: OrderPayload) -> Order:
        return await asyncio.to_thread(self._create_order, order_id, payload)

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await asyncio.to_thread(self._get_order, order_id)

    async def conditional_transition(self, order_id: str, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        return await asyncio.to_thread(self._conditional_transition, order_id, from_status, to_status)

    async def create_execution_attempt(self, order_id: str, attempt_number: int) -> Optional[ExecutionAttempt]:
        return await asyncio.to_thread(self._create_execution_attempt, order_id, attempt_number)

    async def get_latest_execution_attempt(self, order_id: str) -> Optional[ExecutionAttempt]:
        return await asyncio.to_thread(self._get_latest_execution_attempt, order_id)

    async def count_execution_attempts(self, order_id: str) -> int:
        return await asyncio.to_thread(self._count_execution_attempts, order_id)

    async def update_execution_routing(self, attempt_id: str, decision: RoutingDecision) -> bool:
        return await asyncio.to_thread(
            self._update_once,
            "UPDATE order_executions SET chosen_venue = %s, routing_decision = %s WHERE id = %s AND chosen_venue IS NULL",
            (decision.venue, Json(_json_safe(decision.to_dict())), attempt_id),
        )

    async def update_execution_success(self, attempt_id: str, tx_hash: str, execution_price: float) -> bool:
        return await asyncio.to_thread(
            self._update_once,
            "UPDATE order_executions SET tx_hash = %s, execution_price = %s WHERE id = %s AND tx_hash IS NULL",
            (tx_hash, execution_price, attempt_id),
        )

    async def update_execution_failure(self, attempt_id: str, failure_reason: str) -> bool:
        return await asyncio.to_thread(
            self._update_once,
            "UPDATE order_executions SET failure_reason = %s WHERE id = %s AND failure_reason IS NULL",
            (failure_reason, attempt_id),
        )

    async def get_order_executions(self, order_id: str) -> List[ExecutionAttempt]:
        return await asyncio.to_thread(self._get_order_executions, order_id)

    async def get_recent_orders(self, limit: int = 50) -> List[Order]:
        return await asyncio.to_thread(self._get_recent_orders, limit)

    async def check_connection(self) -> bool:
        return await asyncio.to_thread(self._check_connection)

    async def close(self) -> None:
        if self._pool is not None:
            try:
                self._pool.closeall()
            except psycopg2.Error as e:
                logger.debug("PostgreSQL pool close: %s", e)
            self._pool = None
