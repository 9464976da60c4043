"""Postgres-backed store for collaborator requests."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

from psycopg import Connection, Cursor, errors, sql
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.collaborator import CollaboratorRequest, RequestStatus, Transition
from .domain.contracts import SubmitApplicationInput

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS collaborator_requests (
    request_id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'approved', 'rejected')),
    bank_account TEXT NOT NULL CHECK (length(btrim(bank_account)) > 0),
    bank_name TEXT NOT NULL CHECK (length(btrim(bank_name)) > 0),
    commission_rate DOUBLE PRECISION NOT NULL CHECK (commission_rate BETWEEN 0 AND 100),
    approved_by TEXT,
    approved_at TIMESTAMPTZ,
    rejection_reason TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS collaborator_requests_one_live_per_user
    ON collaborator_requests (tenant_id, user_id)
    WHERE status IN ('pending', 'approved');

CREATE INDEX IF NOT EXISTS collaborator_requests_tenant_status_created
    ON collaborator_requests (tenant_id, status, created_at DESC);

CREATE TABLE IF NOT EXISTS collaborator_audit_log (
    audit_id BIGSERIAL PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    request_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    actor TEXT,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_REQUEST_COLUMNS = (
    "request_id, tenant_id, user_id, status, bank_account, bank_name, commission_rate, "
    "approved_by, approved_at, rejection_reason, created_at, updated_at"
)

_RESOLUTION_COLUMNS = frozenset({"status", "approved_by", "approved_at", "rejection_reason"})


class UnitOfWork:
    """Operations bound to one open transaction.

    Everything executed through a unit of work commits together when the
    ``transaction()`` block exits normally and is rolled back when it raises.
    """

    def __init__(self, conn: Connection, cur: Cursor, tenant_id: str) -> None:
        self.conn = conn
        self.cursor = cur
        self.tenant_id = tenant_id

    def lock_applicant(self, user_id: str) -> None:
        """Serialise submissions for one user until the transaction ends."""
        self.cursor.execute(
            "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))",
            (f"collaborator:{self.tenant_id}:{user_id}",),
        )

    def find_live_request(self, user_id: str) -> CollaboratorRequest | None:
        self.cursor.execute(
            f"""
            SELECT {_REQUEST_COLUMNS}
            FROM collaborator_requests
            WHERE tenant_id = %s AND user_id = %s AND status IN ('pending', 'approved')
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (self.tenant_id, user_id),
        )
        row = self.cursor.fetchone()
        return map_request(row) if row else None

    def insert_request(self, user_id: str, payload: SubmitApplicationInput) -> CollaboratorRequest | None:
        """Insert a pending request, returning ``None`` when a live one already exists."""
        now = datetime.now(timezone.utc)
        try:
            with self.conn.transaction():
                self.cursor.execute(
                    f"""
                    INSERT INTO collaborator_requests
                        (request_id, tenant_id, user_id, status, bank_account, bank_name,
                         commission_rate, created_at, updated_at)
                    VALUES (%s, %s, %s, 'pending', %s, %s, %s, %s, %s)
                    RETURNING {_REQUEST_COLUMNS}
                    """,
                    (
                        str(uuid.uuid4()),
                        self.tenant_id,
                        user_id,
                        payload.bank_account,
                        payload.bank_name,
                        payload.commission_rate,
                        now,
                        now,
                    ),
                )
                row = self.cursor.fetchone()
        except errors.UniqueViolation:
            logger.info("live collaborator request already exists for user %s", user_id)
            return None
        return map_request(row)

    def get_request_for_update(self, request_id: str) -> CollaboratorRequest | None:
        """Fetch and row-lock a request; concurrent resolvers wait for this transaction."""
        self.cursor.execute(
            f"""
            SELECT {_REQUEST_COLUMNS}
            FROM collaborator_requests
            WHERE request_id = %s AND tenant_id = %s
            FOR UPDATE
            """,
            (request_id, self.tenant_id),
        )
        row = self.cursor.fetchone()
        return map_request(row) if row else None

    def apply_resolution(self, transition: Transition) -> CollaboratorRequest:
        """Write the request half of a transition, guarded on the row still being pending."""
        unknown = set(transition.request_fields) - _RESOLUTION_COLUMNS
        if unknown:
            raise ValueError(f"unsupported request fields: {sorted(unknown)}")

        assignments = [
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in transition.request_fields
        ]
        assignments.append(sql.SQL("updated_at = NOW()"))
        query = sql.SQL(
            """
            UPDATE collaborator_requests
            SET {assignments}
            WHERE request_id = %s AND tenant_id = %s AND status = 'pending'
            RETURNING {columns}
            """
        ).format(
            assignments=sql.SQL(", ").join(assignments),
            columns=sql.SQL(_REQUEST_COLUMNS),
        )
        params = [to_db(value) for value in transition.request_fields.values()]
        params.extend([transition.request_id, self.tenant_id])
        self.cursor.execute(query, params)
        row = self.cursor.fetchone()
        if row is None:
            raise RuntimeError(f"request {transition.request_id} left pending state mid-transaction")
        return map_request(row)

    def write_audit_event(
        self,
        *,
        request_id: str,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.cursor.execute(
            """
            INSERT INTO collaborator_audit_log (tenant_id, request_id, event_type, actor, metadata)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (self.tenant_id, request_id, event_type, actor, Json(metadata or {})),
        )


class CollaboratorRepository:
    """Request store exposing a transactional boundary plus read-only queries."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def apply_schema(self) -> None:
        """Create request-store tables and indexes when they are missing."""
        with self._pool.connection() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()

    @contextmanager
    def transaction(self, tenant_id: str) -> Iterator[UnitOfWork]:
        """Open a tenant-scoped transaction; an exception inside the block rolls it back."""
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute("SELECT set_config('app.tenant_id', %s, true)", (tenant_id,))
                    yield UnitOfWork(conn, cur, tenant_id)

    def get_request(self, tenant_id: str, request_id: str) -> CollaboratorRequest | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_REQUEST_COLUMNS}
                    FROM collaborator_requests
                    WHERE request_id = %s AND tenant_id = %s
                    """,
                    (request_id, tenant_id),
                )
                row = cur.fetchone()
        return map_request(row) if row else None

    def list_requests(
        self, tenant_id: str, status: RequestStatus | None = None
    ) -> list[CollaboratorRequest]:
        """Return tenant requests newest first, optionally filtered by status."""
        clauses = ["tenant_id = %s"]
        params: list[Any] = [tenant_id]
        if status is not None:
            clauses.append("status = %s")
            params.append(status.value)

        query = f"""
            SELECT {_REQUEST_COLUMNS}
            FROM collaborator_requests
            WHERE {" AND ".join(clauses)}
            ORDER BY created_at DESC, request_id DESC
        """
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [map_request(row) for row in rows]


def map_request(row: tuple) -> CollaboratorRequest:
    """Convert a raw database tuple into a ``CollaboratorRequest``."""
    return CollaboratorRequest(
        request_id=row[0],
        tenant_id=row[1],
        user_id=row[2],
        status=RequestStatus(row[3]),
        bank_account=row[4],
        bank_name=row[5],
        commission_rate=float(row[6]),
        approved_by=row[7],
        approved_at=row[8],
        rejection_reason=row[9],
        created_at=row[10],
        updated_at=row[11],
    )


def to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value
