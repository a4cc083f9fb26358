"""
Stored practice results: submission, history, statistics and the mistake log.
"""
import math
from typing import List, Optional

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from core.exceptions import ResourceNotFoundException
from core.logging import get_logger
from models.models import PracticeRecord
from schemas.practice import (
    PracticeAnswer, PracticeHistoryResponse, PracticeMistake, PracticeRecordDetail,
    PracticeRecordSummary, PracticeResult, PracticeStats, PracticeSubmission, PracticeTypeStats
)

logger = get_logger("practice_records")

MIN_ESTIMATED_SCORE = 200
ESTIMATED_SCORE_RANGE = 800
RECENT_RECORDS = 5


def is_correct(answer: PracticeAnswer) -> bool:
    """A skipped question counts as wrong."""
    return answer.user_answer is not None and answer.user_answer == answer.correct_answer


def estimate_score(correct: int, total: int) -> int:
    """Rough TOEIC estimate: 200 for no correct answers up to 1000 for all of them."""
    if total <= 0:
        return MIN_ESTIMATED_SCORE
    return int(math.floor(MIN_ESTIMATED_SCORE + correct / total * ESTIMATED_SCORE_RANGE + 0.5))


def accuracy_percent(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(math.floor(correct / total * 100 + 0.5))


class PracticeRecordService:
    """Keeps one record per finished practice session."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def submit(self, user_id: int, submission: PracticeSubmission) -> PracticeResult:
        total = len(submission.answers)
        correct = sum(1 for answer in submission.answers if is_correct(answer))
        score = estimate_score(correct, total)

        record = PracticeRecord(
            user_id=user_id,
            session_id=submission.session_id,
            question_type=submission.type.value,
            difficulty=submission.difficulty.value,
            questions_count=total,
            correct_answers=correct,
            total_time_seconds=sum(answer.time_spent for answer in submission.answers),
            score=score,
            answers_json=[answer.model_dump() for answer in submission.answers],
            completed_at=self.clock(),
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)

        logger.info("Practice session recorded", user_id=user_id, record_id=record.id,
                    correct=correct, total=total, score=score)
        return PracticeResult(
            id=record.id,
            session_id=record.session_id,
            score=score,
            accuracy=accuracy_percent(correct, total),
            correct_answers=correct,
            total_questions=total,
            total_time_seconds=record.total_time_seconds,
        )

    async def get_history(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        question_type: Optional[str] = None,
    ) -> PracticeHistoryResponse:
        conditions = [PracticeRecord.user_id == user_id]
        if question_type:
            conditions.append(PracticeRecord.question_type == question_type)

        total = await self.db.scalar(
            select(func.count(PracticeRecord.id)).where(*conditions)
        ) or 0
        result = await self.db.execute(
            select(PracticeRecord)
            .where(*conditions)
            .order_by(desc(PracticeRecord.completed_at), desc(PracticeRecord.id))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return PracticeHistoryResponse(
            items=[PracticeRecordSummary.model_validate(r) for r in result.scalars().all()],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if limit else 0,
        )

    async def get_record(self, user_id: int, record_id: int) -> PracticeRecordDetail:
        result = await self.db.execute(
            select(PracticeRecord).where(
                PracticeRecord.id == record_id, PracticeRecord.user_id == user_id
            )
        )
        record = result.scalar_one_or_none()
        if not record:
            raise ResourceNotFoundException("Practice record not found")

        summary = PracticeRecordSummary.model_validate(record)
        return PracticeRecordDetail(
            **summary.model_dump(),
            answers=[PracticeAnswer(**answer) for answer in record.answers_json or []],
        )

    async def get_mistakes(
        self, user_id: int, limit: int = 50, question_type: Optional[str] = None
    ) -> List[PracticeMistake]:
        """Wrong or skipped answers, newest session first."""
        query = select(PracticeRecord).where(
            PracticeRecord.user_id == user_id,
            PracticeRecord.correct_answers < PracticeRecord.questions_count,
        )
        if question_type:
            query = query.where(PracticeRecord.question_type == question_type)
        result = await self.db.execute(
            query.order_by(desc(PracticeRecord.completed_at), desc(PracticeRecord.id))
        )

        mistakes = []
        for record in result.scalars():
            for raw in record.answers_json or []:
                answer = PracticeAnswer(**raw)
                if is_correct(answer):
                    continue
                mistakes.append(PracticeMistake(
                    **answer.model_dump(),
                    record_id=record.id,
                    session_id=record.session_id,
                    question_type=record.question_type,
                    completed_at=record.completed_at,
                ))
                if len(mistakes) >= limit:
                    return mistakes
        return mistakes

    async def get_stats(self, user_id: int) -> PracticeStats:
        owned = PracticeRecord.user_id == user_id
        totals = (await self.db.execute(
            select(
                func.count(PracticeRecord.id),
                func.coalesce(func.sum(PracticeRecord.questions_count), 0),
                func.coalesce(func.sum(PracticeRecord.correct_answers), 0),
                func.avg(PracticeRecord.score),
                func.max(PracticeRecord.score),
            ).where(owned)
        )).one()
        practices, questions, correct, average, best = totals

        by_type = await self.db.execute(
            select(
                PracticeRecord.question_type,
                func.count(PracticeRecord.id),
                func.sum(PracticeRecord.questions_count),
                func.sum(PracticeRecord.correct_answers),
                func.max(PracticeRecord.score),
            )
            .where(owned)
            .group_by(PracticeRecord.question_type)
            .order_by(PracticeRecord.question_type)
        )
        recent = await self.db.execute(
            select(PracticeRecord)
            .where(owned)
            .order_by(desc(PracticeRecord.completed_at), desc(PracticeRecord.id))
            .limit(RECENT_RECORDS)
        )

        return PracticeStats(
            total_practices=practices,
            total_questions=int(questions),
            correct_answers=int(correct),
            accuracy=accuracy_percent(int(correct), int(questions)),
            average_score=int(math.floor(float(average) + 0.5)) if average is not None else 0,
            best_score=best or 0,
            recent=[PracticeRecordSummary.model_validate(r) for r in recent.scalars().all()],
            by_type=[
                PracticeTypeStats(
                    question_type=row[0],
                    practices=row[1],
                    questions=int(row[2] or 0),
                    correct_answers=int(row[3] or 0),
                    best_score=row[4] or 0,
                )
                for row in by_type.all()
            ],
        )
