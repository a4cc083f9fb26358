# Schemas package for Pydantic models
from .user import UserCreate, UserRead, UserUpdate
from .auth import Token, TokenData, LoginRequest, LoginResponse, RegisterResponse
from .vocabulary import (
    VocabularyItemCreate, VocabularyItemUpdate, VocabularyItemRead, VocabularyListResponse,
    ReviewSubmission, ReviewResult, VocabularyStats, WordMeaning, DefinitionRequest, WordDefinition
)
from .subscription import (
    PermissionSet, PlanFeatures, PlanUpsert, PlanRead, SubscriptionRead, SubscriptionAssign,
    TrialInfo, TrialRecord, TrialStatus, StartTrialResponse, AiChatUsage,
    SubscriptionInfo, QuotaStatus, UserSubscriptionResponse, PlanListResponse
)
from .practice import (
    QuestionGenerationRequest, GeneratedQuestion, QuestionGenerationResponse,
    ChatRequest, ChatResponse, PracticeAnswer, PracticeSubmission, PracticeResult,
    PracticeRecordSummary, PracticeRecordDetail, PracticeHistoryResponse, PracticeMistake, PracticeStats
)

__all__ = [
    "UserCreate", "UserRead", "UserUpdate",
    "Token", "TokenData", "LoginRequest", "LoginResponse", "RegisterResponse",
    "VocabularyItemCreate", "VocabularyItemUpdate", "VocabularyItemRead", "VocabularyListResponse",
    "ReviewSubmission", "ReviewResult", "VocabularyStats", "WordMeaning", "DefinitionRequest", "WordDefinition",
    "PermissionSet", "PlanFeatures", "PlanUpsert", "PlanRead", "SubscriptionRead", "SubscriptionAssign",
    "TrialInfo", "TrialRecord", "TrialStatus", "StartTrialResponse", "AiChatUsage",
    "SubscriptionInfo", "QuotaStatus", "UserSubscriptionResponse", "PlanListResponse",
    "QuestionGenerationRequest", "GeneratedQuestion", "QuestionGenerationResponse",
    "ChatRequest", "ChatResponse", "PracticeAnswer", "PracticeSubmission", "PracticeResult",
    "PracticeRecordSummary", "PracticeRecordDetail", "PracticeHistoryResponse", "PracticeMistake", "PracticeStats",
]
