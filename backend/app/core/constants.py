"""
Shared constants for the backend application.
"""
from decimal import Decimal

# ---------------------------------------------------------------------------
# Referral statuses
# ---------------------------------------------------------------------------
REFERRAL_PENDING = "pending"
REFERRAL_CONFIRMED = "confirmed"
REFERRAL_PAID = "paid"
REFERRAL_CANCELLED = "cancelled"

REFERRAL_TRANSITIONS = {
    REFERRAL_PENDING: (REFERRAL_CONFIRMED, REFERRAL_CANCELLED),
    REFERRAL_CONFIRMED: (REFERRAL_PAID, REFERRAL_CANCELLED),
    REFERRAL_PAID: (),
    REFERRAL_CANCELLED: (),
}

# ---------------------------------------------------------------------------
# Payout statuses
# ---------------------------------------------------------------------------
PAYOUT_PENDING = "pending"
PAYOUT_SCHEDULED = "scheduled"
PAYOUT_PAID = "paid"
PAYOUT_CANCELLED = "cancelled"

PAYOUT_TRANSITIONS = {
    PAYOUT_PENDING: (PAYOUT_SCHEDULED, PAYOUT_CANCELLED),
    PAYOUT_SCHEDULED: (PAYOUT_PAID, PAYOUT_CANCELLED),
    PAYOUT_PAID: (),
    PAYOUT_CANCELLED: (),
}

PAYMENT_PREFERENCES = ("pix", "bank_transfer")

# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------
POINTS_SALE = "sale"
POINTS_RECURRING_SALE = "recurring_sale"
POINTS_ACHIEVEMENT = "achievement"

# requirement_type -> Ambassador attribute
ACHIEVEMENT_METRICS = {
    "sales": "lifetime_sales",
    "earnings": "total_earnings",
    "clicks": "link_clicks",
    "points": "total_points",
}

# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
NOTIFY_COMMISSION_EARNED = "commission_earned"
NOTIFY_PAYMENT_REGISTERED = "payment_registered"
NOTIFY_PAYMENT_CONFIRMED = "payment_confirmed"

# ---------------------------------------------------------------------------
# Marketing materials
# ---------------------------------------------------------------------------
MATERIAL_BANNER = "banner"
MATERIAL_PDF = "pdf"
MATERIAL_WHATSAPP_TEMPLATE = "whatsapp_template"
MATERIAL_INSTAGRAM_TEMPLATE = "instagram_template"

MATERIAL_TYPES = (MATERIAL_BANNER, MATERIAL_PDF, MATERIAL_WHATSAPP_TEMPLATE, MATERIAL_INSTAGRAM_TEMPLATE)
# Banners and PDFs are downloaded; templates are copied as text
FILE_MATERIAL_TYPES = (MATERIAL_BANNER, MATERIAL_PDF)

PUBLIC_DIRECTORY_FALLBACK_NAME = "Embaixadora"

# ---------------------------------------------------------------------------
# Click analytics
# ---------------------------------------------------------------------------
CLICK_WINDOW_DAYS = 30
CLICK_TOP_BUCKETS = 7
DIRECT_SOURCE = "direct"
ORGANIC_MEDIUM = "organic"

# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------
ZERO = Decimal("0")
ONE_CENT = Decimal("0.01")
PERCENT_BASE = Decimal("100")

NOTIFICATIONS_PAGE = 50
POINTS_HISTORY_PAGE = 50
