"""
Database models for the application.
"""
import enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float, ForeignKey, Enum as SAEnum,
    UniqueConstraint, Index, CheckConstraint, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, expression
from db_config import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# --- ENUM Types (mirroring PostgreSQL ENUMs) ---
class UserRoleEnum(enum.Enum):
    user = "user"
    admin = "admin"

class SubscriptionStatusEnum(enum.Enum):
    active = "active"
    trialing = "trialing"
    past_due = "past_due"
    canceled = "canceled"
    incomplete = "incomplete"
    unpaid = "unpaid"

# --- Model Definitions ---

# User and Authentication Models
class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(100), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, server_default=expression.true())
    is_verified = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    role = Column(SAEnum(UserRoleEnum, name="user_role_enum"), nullable=False, default=UserRoleEnum.user)

    # Standalone trial; has_used_trial never reverts once set
    has_used_trial = Column(Boolean, nullable=False, default=False, server_default=expression.false(), index=True)
    trial_started_at = Column(DateTime(timezone=True), nullable=True)
    trial_expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    trial_email = Column(String(100), nullable=True, index=True)
    trial_ip_address = Column(String(64), nullable=True, index=True)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    vocabulary_items = relationship("VocabularyItem", back_populates="user", cascade="all, delete-orphan")
    subscription = relationship("UserSubscription", back_populates="user", uselist=False, cascade="all, delete-orphan")
    usage_quotas = relationship("UsageQuota", back_populates="user", cascade="all, delete-orphan")
    practice_records = relationship("PracticeRecord", back_populates="user", cascade="all, delete-orphan")

class UserSession(Base):
    __tablename__ = "user_session"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False)
    session_token = Column(String(512), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="sessions")

# Vocabulary
class VocabularyItem(Base):
    __tablename__ = "vocabulary_item"
    __table_args__ = (
        UniqueConstraint("user_id", "word", name="uq_vocabulary_item_user_word"),
        CheckConstraint("ease_factor >= 1.3", name="ck_vocabulary_item_ease_floor"),
        CheckConstraint("review_count >= 0", name="ck_vocabulary_item_review_count"),
        Index("ix_vocabulary_item_user_due", "user_id", "next_review_date"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    word = Column(String(100), nullable=False)
    definition = Column(Text, nullable=True)
    context = Column(Text, nullable=True)
    source_type = Column(String(50), nullable=False, default="practice")
    notes = Column(Text, nullable=False, default="")

    # AI dictionary entry; definition_error is set when the last lookup failed
    phonetic = Column(String(100), nullable=True)
    meanings = Column(JSONType, nullable=True)
    definition_error = Column(Boolean, nullable=False, default=False, server_default=expression.false())

    review_count = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    incorrect_count = Column(Integer, nullable=False, default=0)
    ease_factor = Column(Float, nullable=False, default=2.5)
    interval = Column(Integer, nullable=False, default=1)
    next_review_date = Column(DateTime(timezone=True), nullable=False)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    mastered = Column(Boolean, nullable=False, default=False, server_default=expression.false())

    added_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="vocabulary_items")

# Practice history
class PracticeRecord(Base):
    __tablename__ = "practice_record"
    __table_args__ = (
        Index("ix_practice_record_user_completed", "user_id", "completed_at"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    session_id = Column(String(64), nullable=False, index=True)
    question_type = Column(String(50), nullable=False)
    difficulty = Column(String(50), nullable=False)
    questions_count = Column(Integer, nullable=False)
    correct_answers = Column(Integer, nullable=False)
    total_time_seconds = Column(Integer, nullable=False, default=0)
    score = Column(Integer, nullable=False)  # Estimated TOEIC score, 200-1000
    answers_json = Column(JSONType, nullable=False)  # Every answered question, right or wrong
    completed_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="practice_records")

# Subscription Models
class SubscriptionPlan(Base):
    __tablename__ = "subscription_plan"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False)
    name_jp = Column(String(100), nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="jpy")
    interval = Column(String(20), nullable=False, default="month")

    # Feature flags; NULL on vocabulary/view_mistakes means "not set" (treated as enabled)
    ai_practice = Column(Boolean, nullable=False, default=False)
    ai_chat = Column(Boolean, nullable=False, default=False)
    export_data = Column(Boolean, nullable=False, default=False)
    vocabulary = Column(Boolean, nullable=True)
    view_mistakes = Column(Boolean, nullable=True)

    # NULL = unlimited
    daily_practice_limit = Column(Integer, nullable=True)
    daily_ai_chat_limit = Column(Integer, nullable=True)
    max_vocabulary_words = Column(Integer, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class UserSubscription(Base):
    __tablename__ = "user_subscription"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, unique=True)
    # Not a foreign key: rows may reference well-known plans absent from the plan table
    plan_id = Column(String(50), nullable=False, index=True)
    status = Column(SAEnum(SubscriptionStatusEnum, name="subscription_status_enum"), nullable=False,
                    default=SubscriptionStatusEnum.active)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    trial_start = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="subscription")

# Usage counters
class UsageQuota(Base):
    __tablename__ = "usage_quota"
    __table_args__ = (
        UniqueConstraint("user_id", "resource_type", "period_start", name="uq_usage_quota_period"),
        CheckConstraint("used_count >= 0", name="ck_usage_quota_used_count"),
        Index("ix_usage_quota_lookup", "user_id", "resource_type", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False)
    resource_type = Column(String(50), nullable=False)
    used_count = Column(Integer, nullable=False, default=0)
    limit_count = Column(Integer, nullable=True)  # NULL = unlimited
    period_start = Column(DateTime(timezone=True), nullable=True)
    period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="usage_quotas")

__all__ = [
"User", "UserSession", "VocabularyItem", "PracticeRecord", "SubscriptionPlan", "UserSubscription", "UsageQuota",
"UserRoleEnum", "SubscriptionStatusEnum",
]
