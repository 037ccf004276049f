from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from backend.app.core.constants import ONE_CENT, PERCENT_BASE, ZERO
from backend.app.models.ambassador import Ambassador, AmbassadorTier

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return Decimal(str(value))


def round_brl(value: Number) -> Decimal:
    """Round to centavos, half up (R$ convention)."""
    return to_decimal(value).quantize(ONE_CENT, rounding=ROUND_HALF_UP)


def calculate_commission(sale_amount: Number, rate_percent: Number) -> Decimal:
    """commission = sale_amount × rate% rounded to 2 decimals."""
    return round_brl(to_decimal(sale_amount) * to_decimal(rate_percent) / PERCENT_BASE)


def get_effective_commission_rate(ambassador: Ambassador, tier: Optional[AmbassadorTier]) -> Decimal:
    """
    One-time commission rate in percent.
    Priority: individual rate set by admin > tier rate > 0.
    """
    if ambassador.custom_commission_rate is not None:
        return to_decimal(ambassador.custom_commission_rate)
    if tier is not None:
        return to_decimal(tier.commission_rate)
    return ZERO


def months_elapsed(start: datetime, end: datetime) -> int:
    """Whole calendar months between two instants (a renewal on the same day-of-month counts)."""
    rd = relativedelta(end, start)
    return rd.years * 12 + rd.months


def recurring_commission_applies(tier: AmbassadorTier, original_sale_at: datetime, renewal_at: datetime) -> bool:
    """Renewals earn the recurring rate for tier.recurring_months after the original sale."""
    if not tier.recurring_months or to_decimal(tier.recurring_rate) <= ZERO:
        return False
    elapsed = months_elapsed(original_sale_at, renewal_at)
    return 0 <= elapsed <= tier.recurring_months
