from .models import (
    User, UserSession, VocabularyItem, SubscriptionPlan, UserSubscription, UsageQuota,
    UserRoleEnum, SubscriptionStatusEnum
)
