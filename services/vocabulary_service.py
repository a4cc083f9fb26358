"""
Vocabulary notebook with spaced-repetition reviews.
"""
import math
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, delete, func, asc, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, day_bounds, utcnow
from core.exceptions import (
    ConflictException, DuplicateResourceException, ResourceNotFoundException
)
from core.logging import get_logger
from models.models import VocabularyItem
from schemas.vocabulary import (
    VocabularyItemCreate, VocabularyItemRead, VocabularyItemUpdate, VocabularyListResponse,
    VocabularyStats, ReviewResult, WordDefinition, WordMeaning
)
from services.review_scheduler import apply_review

logger = get_logger("vocabulary_service")

SORT_COLUMNS = {
    "created_at": VocabularyItem.added_at,
    "updated_at": VocabularyItem.updated_at,
    "word": VocabularyItem.word,
    "review_count": VocabularyItem.review_count,
    "next_review_date": VocabularyItem.next_review_date,
}

EXPORT_FIELDS = [
    "word", "definition", "context", "notes", "source_type", "mastered",
    "review_count", "correct_count", "incorrect_count", "ease_factor", "interval",
    "next_review_date", "last_reviewed_at", "added_at",
]


class VocabularyService:
    """Per-user word list and review scheduling."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def _get_item(self, user_id: int, word_id: int) -> VocabularyItem:
        result = await self.db.execute(
            select(VocabularyItem)
            .where(VocabularyItem.id == word_id, VocabularyItem.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise ResourceNotFoundException("Vocabulary item not found")
        return item

    async def add_word(self, user_id: int, data: VocabularyItemCreate) -> VocabularyItemRead:
        word = data.word.strip().lower()
        existing = await self.db.execute(
            select(VocabularyItem.id).where(
                VocabularyItem.user_id == user_id, VocabularyItem.word == word
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateResourceException(f"'{word}' is already in your vocabulary")

        now = self.clock()
        item = VocabularyItem(
            user_id=user_id,
            word=word,
            definition=data.definition,
            context=data.context,
            source_type=data.source_type.value,
            notes=data.notes,
            review_count=0,
            correct_count=0,
            incorrect_count=0,
            ease_factor=2.5,
            interval=1,
            next_review_date=now,
            mastered=False,
            added_at=now,
            updated_at=now,
        )
        self.db.add(item)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateResourceException(f"'{word}' is already in your vocabulary")
        await self.db.refresh(item)

        logger.info("Vocabulary word added", user_id=user_id, word_id=item.id)
        return VocabularyItemRead.model_validate(item)

    async def list_words(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> VocabularyListResponse:
        column = SORT_COLUMNS.get(sort_by, VocabularyItem.added_at)
        ordering = asc(column) if sort_order == "asc" else desc(column)

        total = await self.db.scalar(
            select(func.count(VocabularyItem.id)).where(VocabularyItem.user_id == user_id)
        ) or 0
        result = await self.db.execute(
            select(VocabularyItem)
            .where(VocabularyItem.user_id == user_id)
            .order_by(ordering, VocabularyItem.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [VocabularyItemRead.model_validate(i) for i in result.scalars().all()]
        return VocabularyListResponse(
            items=items,
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if limit else 0,
        )

    async def get_due_words(
        self, user_id: int, limit: int = 20, include_mastered: bool = True
    ) -> List[VocabularyItemRead]:
        """Words whose review date has passed, oldest first."""
        query = select(VocabularyItem).where(
            VocabularyItem.user_id == user_id,
            VocabularyItem.next_review_date <= self.clock(),
        )
        if not include_mastered:
            query = query.where(VocabularyItem.mastered.is_(False))
        result = await self.db.execute(
            query.order_by(VocabularyItem.next_review_date.asc(), VocabularyItem.id).limit(limit)
        )
        return [VocabularyItemRead.model_validate(i) for i in result.scalars().all()]

    async def submit_review(
        self, user_id: int, word_id: int, correct: bool, difficulty: int = None
    ) -> ReviewResult:
        """
        Apply one review outcome.

        The write only succeeds if ``review_count`` still has the value the
        schedule was computed from; a concurrent review of the same item makes
        the second one fail with ConflictException.
        """
        item = await self._get_item(user_id, word_id)
        now = self.clock()
        updates = apply_review(item, correct, difficulty, now)
        updates["updated_at"] = now

        result = await self.db.execute(
            update(VocabularyItem)
            .where(
                VocabularyItem.id == word_id,
                VocabularyItem.user_id == user_id,
                VocabularyItem.review_count == item.review_count,
            )
            .values(**updates)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.warning("Review lost a concurrent update", user_id=user_id, word_id=word_id)
            raise ConflictException("This word was reviewed concurrently, please reload it")
        await self.db.commit()

        item = await self._get_item(user_id, word_id)
        logger.info("Vocabulary review recorded", user_id=user_id, word_id=word_id,
                    correct=correct, interval=item.interval, ease_factor=item.ease_factor)
        return ReviewResult(
            item=VocabularyItemRead.model_validate(item),
            ease_factor=updates["ease_factor"],
            interval=updates["interval"],
            next_review_date=updates["next_review_date"],
        )

    async def update_word(self, user_id: int, word_id: int, data: VocabularyItemUpdate) -> VocabularyItemRead:
        item = await self._get_item(user_id, word_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            setattr(item, field, value)
        item.updated_at = self.clock()
        await self.db.commit()
        await self.db.refresh(item)
        return VocabularyItemRead.model_validate(item)

    async def delete_word(self, user_id: int, word_id: int) -> None:
        await self._get_item(user_id, word_id)
        await self.db.execute(
            delete(VocabularyItem)
            .where(VocabularyItem.id == word_id, VocabularyItem.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()
        logger.info("Vocabulary word deleted", user_id=user_id, word_id=word_id)

    async def get_stats(self, user_id: int) -> VocabularyStats:
        now = self.clock()
        day_start, day_end = day_bounds(now)
        owned = VocabularyItem.user_id == user_id

        async def count(*conditions) -> int:
            return await self.db.scalar(
                select(func.count(VocabularyItem.id)).where(owned, *conditions)
            ) or 0

        return VocabularyStats(
            total_words=await count(),
            mastered_words=await count(VocabularyItem.mastered.is_(True)),
            recent_words=await count(VocabularyItem.added_at >= now - timedelta(days=7)),
            words_needing_review=await count(
                VocabularyItem.next_review_date <= now,
                VocabularyItem.mastered.is_(False),
            ),
            reviewed_today=await count(
                VocabularyItem.last_reviewed_at >= day_start,
                VocabularyItem.last_reviewed_at <= day_end,
            ),
        )

    async def export_words(self, user_id: int) -> List[Dict[str, Any]]:
        """All words as flat rows, alphabetically, for CSV export."""
        result = await self.db.execute(
            select(VocabularyItem)
            .where(VocabularyItem.user_id == user_id)
            .order_by(VocabularyItem.word)
        )
        rows = []
        for item in result.scalars().all():
            rows.append({field: getattr(item, field) for field in EXPORT_FIELDS})
        logger.info("Vocabulary exported", user_id=user_id, count=len(rows))
        return rows

    async def find_cached_definition(self, user_id: int, word: str) -> Optional[WordDefinition]:
        """The notebook's stored entry for ``word``, if it has one."""
        result = await self.db.execute(
            select(VocabularyItem).where(
                VocabularyItem.user_id == user_id,
                VocabularyItem.word == word.strip().lower(),
            )
        )
        item = result.scalar_one_or_none()
        if not item or not item.meanings:
            return None

        meanings = [WordMeaning(**m) for m in item.meanings]
        return WordDefinition(
            word=item.word,
            phonetic=item.phonetic,
            part_of_speech=meanings[0].part_of_speech,
            definition=item.definition or meanings[0].definition,
            meanings=meanings,
            cached=True,
        )

    async def get_word(self, user_id: int, word_id: int) -> VocabularyItemRead:
        return VocabularyItemRead.model_validate(await self._get_item(user_id, word_id))

    async def save_definition(self, user_id: int, word_id: int, entry: WordDefinition) -> VocabularyItemRead:
        item = await self._get_item(user_id, word_id)
        item.phonetic = entry.phonetic
        item.meanings = [m.model_dump() for m in entry.meanings]
        item.definition = entry.definition
        item.definition_error = False
        item.updated_at = self.clock()
        await self.db.commit()
        await self.db.refresh(item)

        logger.info("Definition saved", user_id=user_id, word_id=word_id)
        return VocabularyItemRead.model_validate(item)

    async def mark_definition_failed(self, user_id: int, word_id: int) -> None:
        """Flag the word so the client can offer another refresh."""
        await self.db.execute(
            update(VocabularyItem)
            .where(VocabularyItem.id == word_id, VocabularyItem.user_id == user_id)
            .values(definition_error=True, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.warning("Definition refresh failed", user_id=user_id, word_id=word_id)
