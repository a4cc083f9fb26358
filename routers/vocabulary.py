"""
Router for the vocabulary notebook and spaced-repetition reviews.
"""
import csv
import io
from typing import List

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from core.access_control import AccessContext, require_export_access, require_vocabulary_access
from core.clock import Clock, get_clock
from core.exceptions import AIServiceException
from core.logging import get_logger
from core.rate_limiting import rate_limit
from core.security import get_current_active_user
from db_config import get_async_db
from models.models import User
from schemas.vocabulary import (
    DefinitionRequest, ReviewResult, ReviewSubmission, SortOrder, VocabularyItemCreate, VocabularyItemRead,
    VocabularyItemUpdate, VocabularyListResponse, VocabularySortField, VocabularyStats, WordDefinition
)
from services.dictionary_service import DictionaryService, get_dictionary_service
from services.vocabulary_service import EXPORT_FIELDS, VocabularyService

router = APIRouter(prefix="/vocabulary", tags=["Vocabulary"])

logger = get_logger("vocabulary")


def get_vocabulary_service(
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
) -> VocabularyService:
    return VocabularyService(db, clock)


@router.post("/", response_model=VocabularyItemRead, status_code=status.HTTP_201_CREATED)
async def add_word(
    data: VocabularyItemCreate,
    access: AccessContext = Depends(require_vocabulary_access),
    service: VocabularyService = Depends(get_vocabulary_service),
):
    """Add a word. Counts against the plan's vocabulary word limit."""
    item = await service.add_word(access.user.id, data)
    await access.record_usage()
    return item


@router.get("/", response_model=VocabularyListResponse)
async def list_words(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: VocabularySortField = Query(VocabularySortField.created_at),
    sort_order: SortOrder = Query(SortOrder.desc),
    current_user: User = Depends(get_current_active_user),
    service: VocabularyService = Depends(get_vocabulary_service),
):
    return await service.list_words(current_user.id, page, limit, sort_by.value, sort_order.value)


@router.get("/review", response_model=List[VocabularyItemRead])
async def get_review_words(
    limit: int = Query(20, ge=1, le=100),
    include_mastered: bool = Query(True, description="Include words already marked as mastered"),
    current_user: User = Depends(get_current_active_user),
    service: VocabularyService = Depends(get_vocabulary_service),
):
    """Words due for review, oldest due date first."""
    return await service.get_due_words(current_user.id, limit, include_mastered)


@router.get("/stats", response_model=VocabularyStats)
async def get_stats(
    current_user: User = Depends(get_current_active_user),
    service: VocabularyService = Depends(get_vocabulary_service),
):
    return await service.get_stats(current_user.id)


@router.get("/export")
async def export_words(
    access: AccessContext = Depends(require_export_access),
    service: VocabularyService = Depends(get_vocabulary_service),
):
    """Download the whole notebook as CSV."""
    rows = await service.export_words(access.user.id)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
    writer.writeheader()
    writer.writerows(rows)

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="vocabulary.csv"'},
    )


@router.post("/definition", response_model=WordDefinition,
             dependencies=[Depends(rate_limit("ai_generation"))])
async def lookup_definition(
    request: DefinitionRequest,
    current_user: User = Depends(get_current_active_user),
    service: VocabularyService = Depends(get_vocabulary_service),
    dictionary: DictionaryService = Depends(get_dictionary_service),
):
    """Dictionary entry for a word; served from the notebook when it is already stored there."""
    cached = await service.find_cached_definition(current_user.id, request.word)
    if cached:
        return cached
    return await dictionary.lookup(request.word, request.context, request.language.value)


@router.post("/{word_id}/refresh-definition", response_model=VocabularyItemRead,
             dependencies=[Depends(rate_limit("ai_generation"))])
async def refresh_definition(
    word_id: int,
    current_user: User = Depends(get_current_active_user),
    service: VocabularyService = Depends(get_vocabulary_service),
    dictionary: DictionaryService = Depends(get_dictionary_service),
):
    """Look the word up again and store the result on the notebook entry."""
    item = await service.get_word(current_user.id, word_id)
    try:
        entry = await dictionary.lookup(item.word, item.context)
    except AIServiceException:
        await service.mark_definition_failed(current_user.id, word_id)
        raise
    return await service.save_definition(current_user.id, word_id, entry)


@router.post("/{word_id}/review", response_model=ReviewResult)
async def review_word(
    word_id: int,
    submission: ReviewSubmission,
    current_user: User = Depends(get_current_active_user),
    service: VocabularyService = Depends(get_vocabulary_service),
):
    return await service.submit_review(current_user.id, word_id, submission.correct, submission.difficulty)


@router.put("/{word_id}", response_model=VocabularyItemRead)
async def update_word(
    word_id: int,
    data: VocabularyItemUpdate,
    current_user: User = Depends(get_current_active_user),
    service: VocabularyService = Depends(get_vocabulary_service),
):
    return await service.update_word(current_user.id, word_id, data)


@router.delete("/{word_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_word(
    word_id: int,
    current_user: User = Depends(get_current_active_user),
    service: VocabularyService = Depends(get_vocabulary_service),
):
    await service.delete_word(current_user.id, word_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
