"""
Router for AI practice question generation and stored practice results.
"""
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.access_control import AccessContext, require_mistakes_access, require_practice_access
from core.clock import Clock, get_clock
from core.logging import get_logger
from core.rate_limiting import rate_limit, validate_text_input
from core.security import get_current_active_user
from db_config import get_async_db
from models.models import User
from schemas.practice import (
    PracticeHistoryResponse, PracticeMistake, PracticeRecordDetail, PracticeResult, PracticeStats,
    PracticeSubmission, QuestionGenerationRequest, QuestionGenerationResponse, QuestionTypeEnum
)
from services.practice_record_service import PracticeRecordService
from services.practice_service import QuestionGeneratorService, get_question_generator

router = APIRouter(prefix="/practice", tags=["Practice"])

logger = get_logger("practice")


def get_practice_record_service(
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
) -> PracticeRecordService:
    return PracticeRecordService(db, clock)


@router.post("/generate", response_model=QuestionGenerationResponse,
             dependencies=[Depends(rate_limit("ai_generation"))])
async def generate_questions(
    request: QuestionGenerationRequest,
    access: AccessContext = Depends(require_practice_access),
    generator: QuestionGeneratorService = Depends(get_question_generator),
):
    """
    Generate TOEIC practice questions.

    Counts one use of the daily practice quota, only when generation succeeds.
    """
    if request.custom_prompt:
        validate_text_input(request.custom_prompt, max_length=500)

    questions = await generator.generate_questions(request)
    await access.record_usage()

    logger.info("Practice questions generated", user_id=access.user.id, count=len(questions))
    return QuestionGenerationResponse(session_id=str(uuid.uuid4()), questions=questions)


@router.post("/submit", response_model=PracticeResult, status_code=status.HTTP_201_CREATED)
async def submit_practice(
    submission: PracticeSubmission,
    current_user: User = Depends(get_current_active_user),
    service: PracticeRecordService = Depends(get_practice_record_service),
):
    """Store a finished session and return its score."""
    return await service.submit(current_user.id, submission)


@router.get("/history", response_model=PracticeHistoryResponse)
async def get_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    question_type: Optional[QuestionTypeEnum] = Query(None),
    current_user: User = Depends(get_current_active_user),
    service: PracticeRecordService = Depends(get_practice_record_service),
):
    return await service.get_history(
        current_user.id, page, limit, question_type.value if question_type else None
    )


@router.get("/stats/overview", response_model=PracticeStats)
async def get_stats(
    current_user: User = Depends(get_current_active_user),
    service: PracticeRecordService = Depends(get_practice_record_service),
):
    return await service.get_stats(current_user.id)


@router.get("/mistakes", response_model=List[PracticeMistake])
async def get_mistakes(
    limit: int = Query(50, ge=1, le=200),
    question_type: Optional[QuestionTypeEnum] = Query(None),
    access: AccessContext = Depends(require_mistakes_access),
    service: PracticeRecordService = Depends(get_practice_record_service),
):
    """Wrong and skipped answers from past sessions, newest first."""
    return await service.get_mistakes(
        access.user.id, limit, question_type.value if question_type else None
    )


@router.get("/{record_id}", response_model=PracticeRecordDetail)
async def get_record(
    record_id: int,
    access: AccessContext = Depends(require_mistakes_access),
    service: PracticeRecordService = Depends(get_practice_record_service),
):
    """One session with every answer, including the wrong ones."""
    return await service.get_record(access.user.id, record_id)
