"""Adapters for data owned by other services: the account directory and resource catalog."""

from __future__ import annotations

from typing import Any, Iterable

from psycopg import sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, Role
from .domain.collaborator import AccountRef
from .repository import UnitOfWork, to_db

_ACCOUNT_COLUMNS = (
    "account_id, tenant_id, username, email, role, is_approved, bank_account, bank_name, "
    "commission_rate, approved_at, approved_by, created_at"
)

UPDATABLE_FIELDS = frozenset(
    {
        "role",
        "is_approved",
        "bank_account",
        "bank_name",
        "commission_rate",
        "approved_at",
        "approved_by",
    }
)


class AccountDirectory:
    """Read access to accounts plus the one field update onboarding is allowed to make."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def find_by_id(self, account_id: str, tenant_id: str) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("SELECT set_config('app.tenant_id', %s, true)", (tenant_id,))
                cur.execute(
                    f"""
                    SELECT {_ACCOUNT_COLUMNS}
                    FROM accounts
                    WHERE account_id = %s AND tenant_id = %s
                    """,
                    (account_id, tenant_id),
                )
                row = cur.fetchone()
        return map_account(row) if row else None

    def update_fields(self, account_id: str, fields: dict[str, Any], tx: UnitOfWork) -> Account | None:
        """Update ``fields`` on an account inside the caller's transaction.

        Returns ``None`` when no account matched so the caller can abort.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"unsupported account fields: {sorted(unknown)}")
        if not fields:
            raise ValueError("no account fields to update")

        assignments = [sql.SQL("{} = %s").format(sql.Identifier(name)) for name in fields]
        assignments.append(sql.SQL("updated_at = NOW()"))
        query = sql.SQL(
            """
            UPDATE accounts
            SET {assignments}
            WHERE account_id = %s AND tenant_id = %s
            RETURNING {columns}
            """
        ).format(assignments=sql.SQL(", ").join(assignments), columns=sql.SQL(_ACCOUNT_COLUMNS))
        params = [to_db(value) for value in fields.values()]
        params.extend([account_id, tx.tenant_id])
        tx.cursor.execute(query, params)
        row = tx.cursor.fetchone()
        return map_account(row) if row else None

    def display_refs(self, tenant_id: str, account_ids: Iterable[str]) -> dict[str, AccountRef]:
        """Return username/email for the given ids, skipping ids that no longer exist."""
        ids = sorted({account_id for account_id in account_ids if account_id})
        if not ids:
            return {}
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT account_id, username, email
                    FROM accounts
                    WHERE tenant_id = %s AND account_id = ANY(%s)
                    """,
                    (tenant_id, ids),
                )
                rows = cur.fetchall()
        return {row[0]: AccountRef(account_id=row[0], username=row[1], email=row[2]) for row in rows}

    def list_approved_collaborators(self, tenant_id: str) -> list[Account]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_ACCOUNT_COLUMNS}
                    FROM accounts
                    WHERE tenant_id = %s AND role = %s AND is_approved
                    """,
                    (tenant_id, Role.collaborator.value),
                )
                rows = cur.fetchall()
        return [map_account(row) for row in rows]


class ResourceCatalog:
    """Read-only view over uploaded resources used for earnings aggregation."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def totals_by_owner(self, tenant_id: str, owner_ids: Iterable[str]) -> dict[str, tuple[int, float]]:
        """Map owner id to ``(resource_count, price_total)``; owners without resources are absent."""
        ids = sorted(set(owner_ids))
        if not ids:
            return {}
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT uploaded_by, COUNT(*), COALESCE(SUM(price), 0)
                    FROM resources
                    WHERE tenant_id = %s AND uploaded_by = ANY(%s)
                    GROUP BY uploaded_by
                    """,
                    (tenant_id, ids),
                )
                rows = cur.fetchall()
        return {row[0]: (int(row[1]), float(row[2])) for row in rows}


def map_account(row: tuple) -> Account:
    return Account(
        account_id=row[0],
        tenant_id=row[1],
        username=row[2],
        email=row[3],
        role=Role(row[4]),
        is_approved=bool(row[5]),
        bank_account=row[6],
        bank_name=row[7],
        commission_rate=float(row[8] or 0),
        approved_at=row[9],
        approved_by=row[10],
        created_at=row[11],
    )
