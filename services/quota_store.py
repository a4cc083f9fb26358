"""
Row-level access to usage counters.

Every write here is a single statement so concurrent requests cannot lose
increments. Daily rows are keyed by (user_id, resource_type, period_start).
Non-daily counters keep one row per user with no period.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, or_, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from models.models import UsageQuota, VocabularyItem

DAILY_PREFIX = "daily_"

# Permission/plan field holding each counter's limit
DAILY_LIMIT_FIELDS = {
    "daily_practice": "daily_practice_limit",
    "daily_ai_chat": "daily_ai_chat_limit",
}
COUNTER_LIMIT_FIELDS = {
    "vocabulary_words": "max_vocabulary_words",
}


def is_daily(resource_type: str) -> bool:
    return resource_type.startswith(DAILY_PREFIX)


def _insert(db: AsyncSession):
    """Pick the dialect insert construct that supports ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(UsageQuota)
    if dialect == "sqlite":
        return sqlite.insert(UsageQuota)
    raise NotImplementedError(f"Usage counters are not supported on {dialect}")


_CONFLICT_KEYS = ["user_id", "resource_type", "period_start"]


async def get_daily_row(db: AsyncSession, user_id: int, resource_type: str,
                        period_start: datetime) -> Optional[UsageQuota]:
    result = await db.execute(
        select(UsageQuota)
        .where(
            UsageQuota.user_id == user_id,
            UsageQuota.resource_type == resource_type,
            UsageQuota.period_start == period_start,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_latest_row(db: AsyncSession, user_id: int, resource_type: str) -> Optional[UsageQuota]:
    """Most recently created row for a non-daily counter, regardless of period."""
    result = await db.execute(
        select(UsageQuota)
        .where(UsageQuota.user_id == user_id, UsageQuota.resource_type == resource_type)
        .order_by(UsageQuota.created_at.desc(), UsageQuota.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_daily_row_if_absent(db: AsyncSession, user_id: int, resource_type: str,
                                     period_start: datetime, period_end: datetime,
                                     limit_count: Optional[int]) -> None:
    """INSERT ... ON CONFLICT DO NOTHING; the caller re-reads the row."""
    stmt = _insert(db).values(
        user_id=user_id,
        resource_type=resource_type,
        used_count=0,
        limit_count=limit_count,
        period_start=period_start,
        period_end=period_end,
    ).on_conflict_do_nothing(index_elements=_CONFLICT_KEYS)
    await db.execute(stmt)


async def set_daily_limit(db: AsyncSession, user_id: int, resource_type: str,
                          period_start: datetime, period_end: datetime,
                          limit_count: Optional[int]) -> None:
    """Create today's row or overwrite its limit, keeping the used count."""
    stmt = _insert(db).values(
        user_id=user_id,
        resource_type=resource_type,
        used_count=0,
        limit_count=limit_count,
        period_start=period_start,
        period_end=period_end,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=_CONFLICT_KEYS,
        set_={"limit_count": stmt.excluded.limit_count},
    )
    await db.execute(stmt)


async def update_daily_limit(db: AsyncSession, user_id: int, resource_type: str,
                             period_start: datetime, limit_count: Optional[int]) -> int:
    """Overwrite the limit of today's row if there is one; never creates a row."""
    result = await db.execute(
        update(UsageQuota)
        .where(
            UsageQuota.user_id == user_id,
            UsageQuota.resource_type == resource_type,
            UsageQuota.period_start == period_start,
        )
        .values(limit_count=limit_count)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def save_counter(db: AsyncSession, user_id: int, resource_type: str,
                       used_count: int, limit_count: Optional[int]) -> UsageQuota:
    """Create the non-dated counter row, or overwrite the existing one."""
    row = await get_latest_row(db, user_id, resource_type)
    if row is None:
        row = UsageQuota(
            user_id=user_id,
            resource_type=resource_type,
            period_start=None,
            period_end=None,
        )
        db.add(row)
    row.used_count = used_count
    row.limit_count = limit_count
    await db.flush()
    return row


async def set_row_limit(db: AsyncSession, row_id: int, limit_count: Optional[int]) -> None:
    await db.execute(
        update(UsageQuota)
        .where(UsageQuota.id == row_id)
        .values(limit_count=limit_count)
        .execution_options(synchronize_session=False)
    )


async def count_vocabulary_words(db: AsyncSession, user_id: int) -> int:
    """Starting value for the word cap counter."""
    count = await db.scalar(
        select(func.count(VocabularyItem.id)).where(VocabularyItem.user_id == user_id)
    )
    return count or 0


async def upsert_increment(db: AsyncSession, user_id: int, resource_type: str,
                           period_start: datetime, period_end: datetime,
                           amount: int, limit_if_new: Optional[int]) -> None:
    """Increment today's row, creating it with ``used_count=amount`` when absent."""
    stmt = _insert(db).values(
        user_id=user_id,
        resource_type=resource_type,
        used_count=amount,
        limit_count=limit_if_new,
        period_start=period_start,
        period_end=period_end,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=_CONFLICT_KEYS,
        set_={"used_count": UsageQuota.used_count + amount},
    )
    await db.execute(stmt)


async def increment_row(db: AsyncSession, row_id: int, amount: int) -> int:
    """Atomic ``used_count = used_count + amount``. Returns the number of rows touched."""
    result = await db.execute(
        update(UsageQuota)
        .where(UsageQuota.id == row_id)
        .values(used_count=UsageQuota.used_count + amount)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def consume_row(db: AsyncSession, row_id: int, amount: int) -> bool:
    """Increment only while the result stays within the limit."""
    result = await db.execute(
        update(UsageQuota)
        .where(
            UsageQuota.id == row_id,
            or_(
                UsageQuota.limit_count.is_(None),
                UsageQuota.used_count + amount <= UsageQuota.limit_count,
            ),
        )
        .values(used_count=UsageQuota.used_count + amount)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
