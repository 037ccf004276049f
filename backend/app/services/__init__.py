# backend/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from backend.app.services.ambassadors import (
    AmbassadorService,
    AmbassadorServiceError,
    AmbassadorNotFoundError,
    AlreadyEnrolledError,
    build_invite_link,
)
from backend.app.services.referrals import (
    ReferralService,
    ReferralServiceError,
    ReferralNotFoundError,
    ReferralLockedError,
    InvalidSaleError,
)
from backend.app.services.payouts import (
    PayoutService,
    PayoutServiceError,
    PayoutNotFoundError,
    EmptyPayoutError,
    InvalidPeriodError,
    compute_net,
    period_bounds,
)
from backend.app.services.tiers import (
    TierService,
    TierProgress,
    calculate_tier_progress,
    resolve_tier,
)
from backend.app.services.commissions import (
    calculate_commission,
    get_effective_commission_rate,
    recurring_commission_applies,
    round_brl,
)
from backend.app.services.clicks import ClickService
from backend.app.services.achievements import AchievementService
from backend.app.services.notifications import NotificationService
from backend.app.services.materials import (
    MaterialService,
    MaterialServiceError,
    MaterialNotFoundError,
    InvalidMaterialError,
)
from backend.app.services.ranking import get_ranking, get_position
from backend.app.services.realtime import EventBuffer, RealtimeEvents, RealtimePublisher

__all__ = [
    # Ambassadors
    "AmbassadorService",
    "AmbassadorServiceError",
    "AmbassadorNotFoundError",
    "AlreadyEnrolledError",
    "build_invite_link",
    # Referrals
    "ReferralService",
    "ReferralServiceError",
    "ReferralNotFoundError",
    "ReferralLockedError",
    "InvalidSaleError",
    # Payouts
    "PayoutService",
    "PayoutServiceError",
    "PayoutNotFoundError",
    "EmptyPayoutError",
    "InvalidPeriodError",
    "compute_net",
    "period_bounds",
    # Tiers & commissions
    "TierService",
    "TierProgress",
    "calculate_tier_progress",
    "resolve_tier",
    "calculate_commission",
    "get_effective_commission_rate",
    "recurring_commission_applies",
    "round_brl",
    # Engagement
    "ClickService",
    "AchievementService",
    "NotificationService",
    # Marketing materials
    "MaterialService",
    "MaterialServiceError",
    "MaterialNotFoundError",
    "InvalidMaterialError",
    "get_ranking",
    "get_position",
    # Realtime
    "EventBuffer",
    "RealtimeEvents",
    "RealtimePublisher",
]
