"""
Pydantic schemas for vocabulary items and spaced-repetition reviews.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
import enum

from schemas.practice import LanguageEnum


class VocabularySourceEnum(str, enum.Enum):
    practice = "practice"
    review = "review"
    manual = "manual"


class VocabularySortField(str, enum.Enum):
    created_at = "created_at"
    updated_at = "updated_at"
    word = "word"
    review_count = "review_count"
    next_review_date = "next_review_date"


class SortOrder(str, enum.Enum):
    asc = "asc"
    desc = "desc"


class WordMeaning(BaseModel):
    part_of_speech: str = ""
    definition: str
    example: Optional[str] = None


class VocabularyItemCreate(BaseModel):
    word: str = Field(..., min_length=1, max_length=100)
    definition: Optional[str] = Field(None, max_length=2000)
    context: Optional[str] = Field(None, max_length=500)
    source_type: VocabularySourceEnum = VocabularySourceEnum.practice
    notes: str = Field("", max_length=2000)


class VocabularyItemUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)
    mastered: Optional[bool] = None


class VocabularyItemRead(BaseModel):
    id: int
    user_id: int
    word: str
    definition: Optional[str] = None
    context: Optional[str] = None
    source_type: str
    notes: str
    phonetic: Optional[str] = None
    meanings: Optional[List[WordMeaning]] = None
    definition_error: bool = False
    review_count: int
    correct_count: int
    incorrect_count: int
    ease_factor: float
    interval: int
    next_review_date: datetime
    last_reviewed_at: Optional[datetime] = None
    mastered: bool
    added_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VocabularyListResponse(BaseModel):
    items: List[VocabularyItemRead]
    total: int
    page: int
    limit: int
    pages: int


class ReviewSubmission(BaseModel):
    """
    Outcome of one review.

    ``difficulty`` is the self-rated quality (1 = very hard, 5 = very easy).
    It is required for correct answers and range-checked by the scheduler,
    so it is accepted here as any integer.
    """
    correct: bool
    difficulty: Optional[int] = None


class ReviewResult(BaseModel):
    item: VocabularyItemRead
    ease_factor: float
    interval: int
    next_review_date: datetime


class VocabularyStats(BaseModel):
    total_words: int
    mastered_words: int
    recent_words: int
    words_needing_review: int
    reviewed_today: int


class DefinitionRequest(BaseModel):
    word: str = Field(..., min_length=1, max_length=100)
    context: Optional[str] = Field(None, max_length=500)
    language: LanguageEnum = LanguageEnum.en


class WordDefinition(BaseModel):
    """Dictionary entry for a word, from the learner's notebook or from the AI."""
    word: str
    phonetic: Optional[str] = None
    part_of_speech: str = ""
    definition: str = ""
    meanings: List[WordMeaning] = Field(default_factory=list)
    cached: bool = False
