"""
Pydantic schemas for AI question generation and chat explanations.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
import enum


class QuestionTypeEnum(str, enum.Enum):
    LISTENING_PART1 = "LISTENING_PART1"
    LISTENING_PART2 = "LISTENING_PART2"
    LISTENING_PART3 = "LISTENING_PART3"
    LISTENING_PART4 = "LISTENING_PART4"
    READING_PART5 = "READING_PART5"
    READING_PART6 = "READING_PART6"
    READING_PART7 = "READING_PART7"


class PracticeDifficultyEnum(str, enum.Enum):
    UNDER_500 = "UNDER_500"
    LEVEL_500_600 = "LEVEL_500_600"
    LEVEL_600_700 = "LEVEL_600_700"
    LEVEL_700_800 = "LEVEL_700_800"
    OVER_800 = "OVER_800"
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


class LanguageEnum(str, enum.Enum):
    en = "en"
    zh = "zh"
    ja = "ja"


class QuestionGenerationRequest(BaseModel):
    type: QuestionTypeEnum
    difficulty: PracticeDifficultyEnum
    count: int = Field(..., ge=1, le=20)
    topic: Optional[str] = Field(None, max_length=200)
    custom_prompt: Optional[str] = Field(None, max_length=500)
    language: LanguageEnum = LanguageEnum.en
    time_limit: Optional[int] = Field(None, ge=0)


class GeneratedQuestion(BaseModel):
    """One question as returned by the generator."""
    id: str
    type: QuestionTypeEnum
    difficulty: str
    question: str
    options: List[str] = Field(..., min_length=2, max_length=4)
    correct_answer: int = Field(..., ge=0, le=3)
    explanation: str = ""
    passage: Optional[str] = None
    category: Optional[str] = None


class QuestionGenerationResponse(BaseModel):
    session_id: str
    questions: List[GeneratedQuestion]


class QuestionContext(BaseModel):
    id: Optional[str] = None
    question: Optional[str] = Field(None, max_length=4000)
    options: Optional[List[str]] = None
    correct_answer: Optional[int] = None
    user_answer: Optional[int] = None
    category: Optional[str] = None
    explanation: Optional[str] = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    session_id: Optional[str] = None
    question_context: Optional[QuestionContext] = None
    language: LanguageEnum = LanguageEnum.en


class ChatResponse(BaseModel):
    session_id: str
    reply: str
    remaining: Optional[int] = None


# Practice history
class PracticeAnswer(BaseModel):
    """One answered question. ``user_answer`` is None when the question was skipped."""
    question_id: Optional[str] = None
    question: str = Field(..., min_length=1, max_length=4000)
    options: List[str] = Field(..., min_length=2, max_length=4)
    correct_answer: int = Field(..., ge=0, le=3)
    user_answer: Optional[int] = Field(None, ge=0, le=3)
    explanation: str = ""
    category: Optional[str] = None
    time_spent: int = Field(0, ge=0)


class PracticeSubmission(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    type: QuestionTypeEnum
    difficulty: PracticeDifficultyEnum
    answers: List[PracticeAnswer] = Field(..., min_length=1, max_length=100)


class PracticeResult(BaseModel):
    id: int
    session_id: str
    score: int
    accuracy: int
    correct_answers: int
    total_questions: int
    total_time_seconds: int


class PracticeRecordSummary(BaseModel):
    id: int
    session_id: str
    question_type: str
    difficulty: str
    questions_count: int
    correct_answers: int
    total_time_seconds: int
    score: int
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PracticeRecordDetail(PracticeRecordSummary):
    answers: List[PracticeAnswer]


class PracticeHistoryResponse(BaseModel):
    items: List[PracticeRecordSummary]
    total: int
    page: int
    limit: int
    pages: int


class PracticeMistake(PracticeAnswer):
    record_id: int
    session_id: str
    question_type: str
    completed_at: Optional[datetime] = None


class PracticeTypeStats(BaseModel):
    question_type: str
    practices: int
    questions: int
    correct_answers: int
    best_score: int


class PracticeStats(BaseModel):
    total_practices: int
    total_questions: int
    correct_answers: int
    accuracy: int
    average_score: int
    best_score: int
    recent: List[PracticeRecordSummary]
    by_type: List[PracticeTypeStats]
