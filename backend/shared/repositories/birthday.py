"""Repository for the birthday_notifications table (the notification record store).

Status transitions performed by the dispatcher are compare-and-set: a row is
claimed while ``PENDING`` and unclaimed, and completed only while still
``PENDING``. Operator transitions (reset, exclusion) are unconditional.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

import asyncpg

from shared.models.birthday import (
    BirthdayNotification,
    NotificationFilter,
    NotificationStatus,
    Page,
    PageRequest,
)
from shared.recurrence import occurrence_date

_COLUMNS = (
    "id, person_id, year, birth_date, occurrence_date, status, is_excluded, "
    "sent_at, last_error, claimed_at, created_at, updated_at"
)

_JOINED_COLUMNS = (
    "n.id, n.person_id, n.year, n.birth_date, n.occurrence_date, n.status, n.is_excluded, "
    "n.sent_at, n.last_error, n.claimed_at, n.created_at, n.updated_at, "
    "p.display_name, p.alumni_cohort, p.phone_number"
)

SORTABLE_COLUMNS = {
    "id": "n.id",
    "person_id": "n.person_id",
    "year": "n.year",
    "birth_date": "n.birth_date",
    "occurrence_date": "n.occurrence_date",
    "notification_date": "n.occurrence_date",
    "status": "n.status",
    "is_excluded": "n.is_excluded",
    "sent_at": "n.sent_at",
    "last_error": "n.last_error",
    "created_at": "n.created_at",
    "updated_at": "n.updated_at",
    "display_name": "p.display_name",
    "alumni_cohort": "p.alumni_cohort",
}


def build_filter_clause(flt: NotificationFilter) -> tuple[str, list[Any]]:
    """Translate a filter into a ``WHERE`` clause and its positional values."""
    conditions: list[str] = []
    values: list[Any] = []

    def add(template: str, value: Any) -> None:
        values.append(value)
        conditions.append(template.format(idx=len(values)))

    if flt.year is not None:
        add("n.year = ${idx}", flt.year)
    if flt.alumni_cohort:
        add("p.alumni_cohort = ${idx}", flt.alumni_cohort)
    if flt.status is not None:
        add("n.status = ${idx}", NotificationStatus(flt.status).value)
    if flt.is_excluded is not None:
        add("n.is_excluded = ${idx}", flt.is_excluded)
    if flt.start_occurrence_date is not None:
        add("n.occurrence_date >= ${idx}", flt.start_occurrence_date)
    if flt.end_occurrence_date is not None:
        add("n.occurrence_date <= ${idx}", flt.end_occurrence_date)
    if flt.start_birth_date is not None:
        add("n.birth_date >= ${idx}", flt.start_birth_date)
    if flt.end_birth_date is not None:
        add("n.birth_date <= ${idx}", flt.end_birth_date)
    if flt.name and flt.name.strip():
        add("p.display_name ILIKE ${idx}", f"%{flt.name.strip()}%")

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where, values


def build_order_clause(page: PageRequest) -> str:
    column = SORTABLE_COLUMNS.get(page.sort_by)
    if column is None:
        raise ValueError(f"Cannot sort by '{page.sort_by}'")
    direction = page.sort_direction.upper()
    if direction not in ("ASC", "DESC"):
        raise ValueError(f"Invalid sort direction '{page.sort_direction}'")
    # id as tie-breaker keeps pagination stable
    return f"ORDER BY {column} {direction}, n.id {direction}"


class BirthdayNotificationRepository:
    """Pure SQL operations for birthday notification records."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Generation ====================

    async def upsert(
        self,
        person_id: int,
        year: int,
        birth_date: date,
        is_excluded: bool,
    ) -> bool:
        """Create the record for ``(person_id, year)`` unless one exists.

        Existing rows are never touched, so re-running generation cannot
        resurrect an excluded or already-sent record. Returns True if created.
        """
        status = NotificationStatus.EXCLUDED if is_excluded else NotificationStatus.PENDING
        async with self.pool.acquire() as conn:
            record_id = await conn.fetchval(
                """
                INSERT INTO birthday_notifications
                    (person_id, year, birth_date, occurrence_date, status, is_excluded)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (person_id, year) DO NOTHING
                RETURNING id
                """,
                person_id,
                year,
                birth_date,
                occurrence_date(birth_date, year),
                status.value,
                is_excluded,
            )
        return record_id is not None

    # ==================== Reads ====================

    async def get(self, person_id: int, year: int) -> BirthdayNotification | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM birthday_notifications WHERE person_id = $1 AND year = $2",
                person_id,
                year,
            )
            return BirthdayNotification(**dict(row)) if row else None

    async def get_by_id(self, record_id: int) -> BirthdayNotification | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM birthday_notifications WHERE id = $1",
                record_id,
            )
            return BirthdayNotification(**dict(row)) if row else None

    async def list_due(self, as_of: date, lead_days: int) -> list[BirthdayNotification]:
        """PENDING, unclaimed rows whose ``occurrence_date - lead_days == as_of``."""
        target = as_of + timedelta(days=lead_days)
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM birthday_notifications
                WHERE status = 'PENDING' AND claimed_at IS NULL AND occurrence_date = $1
                ORDER BY id
                """,
                target,
            )
            return [BirthdayNotification(**dict(row)) for row in rows]

    async def list_for_year(
        self, year: int, person_ids: list[int]
    ) -> dict[int, BirthdayNotification]:
        """Records of *year* for the given people, keyed by person id."""
        if not person_ids:
            return {}
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM birthday_notifications
                WHERE year = $1 AND person_id = ANY($2::bigint[])
                """,
                year,
                person_ids,
            )
            return {row["person_id"]: BirthdayNotification(**dict(row)) for row in rows}

    async def query(self, flt: NotificationFilter, page: PageRequest) -> Page:
        """Filtered, sorted, paginated listing joined with profile data."""
        where, values = build_filter_clause(flt)
        order = build_order_clause(page)
        base = "FROM birthday_notifications n JOIN alumni_profiles p ON p.id = n.person_id"
        limit_idx = len(values) + 1

        async with self.pool.acquire() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) {base} {where}", *values)
            rows = await conn.fetch(
                f"SELECT {_JOINED_COLUMNS} {base} {where} {order} "
                f"LIMIT ${limit_idx} OFFSET ${limit_idx + 1}",
                *values,
                page.size,
                page.page * page.size,
            )
        return Page(
            items=[dict(row) for row in rows],
            total=int(total or 0),
            page=page.page,
            size=page.size,
        )

    async def count_by_status(self, year: int) -> dict[str, int]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT status, COUNT(*) AS total
                FROM birthday_notifications
                WHERE year = $1
                GROUP BY status
                """,
                year,
            )
            return {row["status"]: int(row["total"]) for row in rows}

    # ==================== Dispatch transitions ====================

    async def claim(self, record_id: int) -> bool:
        """Mark a due row as in flight. Only one caller can win the claim."""
        async with self.pool.acquire() as conn:
            claimed = await conn.fetchval(
                """
                UPDATE birthday_notifications
                SET claimed_at = NOW(), updated_at = NOW()
                WHERE id = $1 AND status = 'PENDING' AND claimed_at IS NULL
                RETURNING id
                """,
                record_id,
            )
        return claimed is not None

    async def set_status(
        self,
        record_id: int,
        status: NotificationStatus,
        *,
        sent_at: datetime | None = None,
        error: str | None = None,
        expected: NotificationStatus | None = None,
    ) -> BirthdayNotification | None:
        """Write a delivery outcome and release the claim.

        With *expected* the update only applies while the row still has that
        status (compare-and-set); returns None when nothing was updated.
        """
        if status is NotificationStatus.SENT and sent_at is None:
            raise ValueError("SENT requires sent_at")
        if status is NotificationStatus.FAILED and not error:
            raise ValueError("FAILED requires an error description")

        query = """
            UPDATE birthday_notifications
            SET status = $2, sent_at = $3, last_error = $4,
                claimed_at = NULL, updated_at = NOW()
            WHERE id = $1
        """
        args: list[Any] = [record_id, status.value, sent_at, error]
        if expected is not None:
            query += " AND status = $5"
            args.append(expected.value)
        query += f" RETURNING {_COLUMNS}"

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            return BirthdayNotification(**dict(row)) if row else None

    async def fail_stale_claims(self, older_than_seconds: float, error: str) -> int:
        """Fail PENDING rows claimed more than *older_than_seconds* ago.

        Such a claim was left by a run that died between claim and completion;
        the transport may or may not have been called, so the row is not re-armed.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE birthday_notifications
                SET status = 'FAILED', last_error = $2, claimed_at = NULL, updated_at = NOW()
                WHERE status = 'PENDING' AND claimed_at IS NOT NULL
                  AND claimed_at < NOW() - $1::float8 * INTERVAL '1 second'
                RETURNING id
                """,
                older_than_seconds,
                error,
            )
        return len(rows)

    # ==================== Operator transitions ====================

    async def reset(self, record_id: int) -> BirthdayNotification | None:
        """Force a record back to PENDING, clearing delivery state and exclusion."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE birthday_notifications
                SET status = 'PENDING', sent_at = NULL, last_error = NULL,
                    claimed_at = NULL, is_excluded = FALSE, updated_at = NOW()
                WHERE id = $1
                RETURNING {_COLUMNS}
                """,
                record_id,
            )
            return BirthdayNotification(**dict(row)) if row else None

    async def set_exclusion(self, record_id: int, excluded: bool) -> BirthdayNotification | None:
        """Exclude or include a single record.

        Including restores SENT if the record had been delivered, else PENDING.
        """
        if excluded:
            query = f"""
                UPDATE birthday_notifications
                SET status = 'EXCLUDED', is_excluded = TRUE, claimed_at = NULL, updated_at = NOW()
                WHERE id = $1
                RETURNING {_COLUMNS}
            """
        else:
            query = f"""
                UPDATE birthday_notifications
                SET status = CASE
                        WHEN status <> 'EXCLUDED' THEN status
                        WHEN sent_at IS NOT NULL THEN 'SENT'
                        ELSE 'PENDING'
                    END,
                    is_excluded = FALSE, updated_at = NOW()
                WHERE id = $1
                RETURNING {_COLUMNS}
            """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, record_id)
            return BirthdayNotification(**dict(row)) if row else None

    async def set_person_exclusion(self, person_id: int, from_year: int, excluded: bool) -> int:
        """Propagate a person's exclusion flag to their records from *from_year* on.

        Excluding moves still-PENDING rows to EXCLUDED; including moves
        EXCLUDED rows back (SENT if already delivered, else PENDING).
        Returns the number of rows whose status changed.
        """
        if excluded:
            query = """
                UPDATE birthday_notifications
                SET is_excluded = TRUE, status = 'EXCLUDED', claimed_at = NULL, updated_at = NOW()
                WHERE person_id = $1 AND year >= $2 AND status = 'PENDING'
                RETURNING id
            """
            mirror = """
                UPDATE birthday_notifications SET is_excluded = TRUE, updated_at = NOW()
                WHERE person_id = $1 AND year >= $2 AND NOT is_excluded
            """
        else:
            query = """
                UPDATE birthday_notifications
                SET is_excluded = FALSE,
                    status = CASE WHEN sent_at IS NOT NULL THEN 'SENT' ELSE 'PENDING' END,
                    updated_at = NOW()
                WHERE person_id = $1 AND year >= $2 AND status = 'EXCLUDED'
                RETURNING id
            """
            mirror = """
                UPDATE birthday_notifications SET is_excluded = FALSE, updated_at = NOW()
                WHERE person_id = $1 AND year >= $2 AND is_excluded
            """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                changed = await conn.fetch(query, person_id, from_year)
                await conn.execute(mirror, person_id, from_year)
        return len(changed)
