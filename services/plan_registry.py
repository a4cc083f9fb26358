"""
Built-in plan catalog.

Used to seed the plan table, to answer plan listings when the table is empty,
and to resolve the well-known free plan ids that subscriptions may reference
without a matching row.
"""
from typing import Dict, List, Optional

from schemas.subscription import PermissionSet, PlanFeatures, PlanRead

FREE_PLAN_ID = "free"
FREE_PLAN_ALIASES = ("free", "free_plan")

DEFAULT_PLANS: List[PlanRead] = [
    PlanRead(
        id="free",
        name="Free Plan",
        name_jp="無料プラン",
        price_cents=0,
        currency="jpy",
        interval="month",
        ai_practice=False,
        ai_chat=False,
        export_data=False,
        vocabulary=True,
        view_mistakes=True,
        daily_practice_limit=None,
        daily_ai_chat_limit=0,
        max_vocabulary_words=None,
        sort_order=1,
    ),
    PlanRead(
        id="premium_monthly",
        name="Premium Monthly",
        name_jp="プレミアム月額",
        price_cents=300000,
        currency="jpy",
        interval="month",
        ai_practice=True,
        ai_chat=True,
        export_data=True,
        vocabulary=True,
        view_mistakes=True,
        sort_order=2,
    ),
    PlanRead(
        id="premium_yearly",
        name="Premium Yearly",
        name_jp="プレミアム年額",
        price_cents=3000000,
        currency="jpy",
        interval="year",
        ai_practice=True,
        ai_chat=True,
        export_data=True,
        vocabulary=True,
        view_mistakes=True,
        sort_order=3,
    ),
]

_PLANS_BY_ID: Dict[str, PlanRead] = {plan.id: plan for plan in DEFAULT_PLANS}


def get_well_known_plan(plan_id: str) -> Optional[PlanRead]:
    """Resolve a plan id missing from the plan table. Only the free aliases qualify."""
    if plan_id in FREE_PLAN_ALIASES:
        return _PLANS_BY_ID[FREE_PLAN_ID]
    return None


def free_tier_permissions() -> PermissionSet:
    """Permissions for users without a usable subscription."""
    return plan_permissions(_PLANS_BY_ID[FREE_PLAN_ID])


def denied_permissions() -> PermissionSet:
    """Every feature off; returned when entitlements cannot be resolved."""
    return PermissionSet(
        ai_practice=False,
        ai_chat=False,
        vocabulary=False,
        export_data=False,
        view_mistakes=False,
        daily_practice_limit=0,
        daily_ai_chat_limit=0,
        max_vocabulary_words=0,
    )


def plan_permissions(plan) -> PermissionSet:
    """Build a permission set from a plan row or PlanRead."""
    features = PlanFeatures(
        ai_practice=bool(plan.ai_practice),
        ai_chat=bool(plan.ai_chat),
        export_data=bool(plan.export_data),
        vocabulary=plan.vocabulary,
        view_mistakes=plan.view_mistakes,
    )
    return features.to_permissions(
        daily_practice_limit=plan.daily_practice_limit,
        daily_ai_chat_limit=plan.daily_ai_chat_limit,
        max_vocabulary_words=plan.max_vocabulary_words,
    )
