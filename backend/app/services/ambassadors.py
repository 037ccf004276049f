# backend/app/services/ambassadors.py
"""
Ambassador enrollment, administration and dashboards.
"""
import re
import secrets
import string
import unicodedata
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import local_midnight_utc, local_today, utcnow
from backend.app.core.constants import (
    PAYMENT_PREFERENCES,
    PAYOUT_PAID,
    PUBLIC_DIRECTORY_FALLBACK_NAME,
    REFERRAL_CANCELLED,
    ZERO,
)
from backend.app.core.exceptions import NotFoundError, ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.models.ambassador import Ambassador
from backend.app.models.click import AmbassadorClick
from backend.app.models.payout import AmbassadorPayout
from backend.app.models.referral import AmbassadorReferral
from backend.app.models.user import Profile
from backend.app.services.commissions import round_brl, to_decimal
from backend.app.services.referrals import normalize_code
from backend.app.services.tiers import TierService

logger = get_logger(__name__)

CODE_PREFIX_LEN = 6
CODE_SUFFIX_LEN = 4
CODE_ATTEMPTS = 10
_CODE_ALPHABET = string.ascii_uppercase + string.digits


class AmbassadorServiceError(ServiceError):
    pass


class AmbassadorNotFoundError(NotFoundError):
    def __init__(self, ref: Any):
        super().__init__(f"Embaixadora {ref} não encontrada")


class AlreadyEnrolledError(AmbassadorServiceError):
    def __init__(self, user_id: int):
        super().__init__(f"Usuária {user_id} já é embaixadora", 409)


def code_prefix(name: Optional[str]) -> str:
    """Uppercase ASCII letters/digits of the name, accents stripped ('Júlia Sá' -> 'JULIAS')."""
    ascii_name = unicodedata.normalize("NFKD", name or "").encode("ascii", "ignore").decode()
    cleaned = re.sub(r"[^A-Za-z0-9]", "", ascii_name).upper()
    return cleaned[:CODE_PREFIX_LEN] or "EMB"


def generate_referral_code(name: Optional[str]) -> str:
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(CODE_SUFFIX_LEN))
    return f"{code_prefix(name)}{suffix}"


def build_invite_link(
    referral_code: str,
    utm_source: Optional[str] = None,
    utm_medium: Optional[str] = None,
    utm_campaign: Optional[str] = None,
) -> str:
    base = f"{get_settings().SITE_URL.rstrip('/')}/convite/{referral_code}"
    params = {
        key: value
        for key, value in (("utm_source", utm_source), ("utm_medium", utm_medium), ("utm_campaign", utm_campaign))
        if value
    }
    return f"{base}?{urlencode(params)}" if params else base


def ambassador_to_dict(a: Ambassador, profile: Optional[Profile] = None) -> Dict[str, Any]:
    data = {
        "id": a.id,
        "user_id": a.user_id,
        "referral_code": a.referral_code,
        "invite_link": build_invite_link(a.referral_code),
        "tier_id": a.tier_id,
        "tier_updated_at": a.tier_updated_at.isoformat() if a.tier_updated_at else None,
        "custom_commission_rate": float(a.custom_commission_rate) if a.custom_commission_rate is not None else None,
        "lifetime_sales": a.lifetime_sales,
        "link_clicks": a.link_clicks,
        "total_points": a.total_points,
        "pending_commission": float(a.pending_commission),
        "total_earnings": float(a.total_earnings),
        "active": a.active,
        "show_on_public_page": a.show_on_public_page,
        "display_order": a.display_order,
        "payment_preference": a.payment_preference,
        "minimum_payout": float(a.minimum_payout),
        "next_payout_date": a.next_payout_date.isoformat() if a.next_payout_date else None,
        "created_at": a.created_at.isoformat() if a.created_at else None,
    }
    if profile is not None:
        data["full_name"] = profile.full_name
        data["email"] = profile.email
        data["avatar_url"] = profile.avatar_url
    return data


def public_profile_to_dict(a: Ambassador, profile: Optional[Profile]) -> Dict[str, Any]:
    """Directory card. Ambassadors without a profile row show a generic name."""
    return {
        "id": a.id,
        "referral_code": a.referral_code,
        "tier_id": a.tier_id,
        "display_order": a.display_order,
        "invite_link": build_invite_link(a.referral_code),
        "profile": {
            "full_name": (profile.full_name if profile else None) or PUBLIC_DIRECTORY_FALLBACK_NAME,
            "avatar_url": profile.avatar_url if profile else None,
            "city": profile.city if profile else None,
            "state": profile.state if profile else None,
            "public_bio": profile.public_bio if profile else None,
            "instagram_url": profile.instagram_url if profile else None,
            "linkedin_url": profile.linkedin_url if profile else None,
            "website_url": profile.website_url if profile else None,
        },
    }


def payment_data_to_dict(a: Ambassador) -> Dict[str, Any]:
    return {
        "pix_key": a.pix_key,
        "bank_data": a.bank_data,
        "payment_preference": a.payment_preference,
        "minimum_payout": float(a.minimum_payout),
    }


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


class AmbassadorService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def enroll(self, user_id: int, referral_code: Optional[str] = None) -> Ambassador:
        """Enroll a profile in the program at the lowest tier."""
        profile = await self.session.get(Profile, user_id)
        if not profile:
            raise NotFoundError(f"Perfil {user_id} não encontrado")
        existing = await self.session.execute(select(Ambassador.id).where(Ambassador.user_id == user_id))
        if existing.scalar_one_or_none() is not None:
            raise AlreadyEnrolledError(user_id)

        tier = await TierService(self.session).lowest_tier()
        if tier is None:
            raise AmbassadorServiceError("Nenhum nível de embaixadora configurado", 409)

        if referral_code:
            code = normalize_code(referral_code)
            if not re.fullmatch(r"[A-Z0-9]{4,32}", code):
                raise AmbassadorServiceError("Código de indicação inválido", 400)
            if await self._code_taken(code):
                raise AmbassadorServiceError(f"Código {code} já está em uso", 409)
        else:
            code = await self._unique_code(profile.full_name)

        ambassador = Ambassador(
            user_id=user_id,
            referral_code=code,
            tier_id=tier.id,
            tier_updated_at=utcnow(),
        )
        self.session.add(ambassador)
        try:
            await self.session.flush()
        except IntegrityError:
            raise AmbassadorServiceError("Não foi possível cadastrar a embaixadora (código ou usuária duplicados)", 409)
        logger.info("Ambassador enrolled", ambassador_id=ambassador.id, user_id=user_id, referral_code=code)
        return ambassador

    async def _code_taken(self, code: str) -> bool:
        q = select(Ambassador.id).where(Ambassador.referral_code == code)
        return (await self.session.execute(q)).scalar_one_or_none() is not None

    async def _unique_code(self, name: Optional[str]) -> str:
        for _ in range(CODE_ATTEMPTS):
            code = generate_referral_code(name)
            if not await self._code_taken(code):
                return code
        raise AmbassadorServiceError("Não foi possível gerar um código de indicação único", 500)

    async def get(self, ambassador_id: int) -> Ambassador:
        ambassador = await self.session.get(Ambassador, ambassador_id)
        if not ambassador:
            raise AmbassadorNotFoundError(ambassador_id)
        return ambassador

    async def get_by_user(self, user_id: int) -> Optional[Ambassador]:
        q = select(Ambassador).where(Ambassador.user_id == user_id)
        return (await self.session.execute(q)).scalar_one_or_none()

    async def get_by_code(self, referral_code: str) -> Optional[Ambassador]:
        code = normalize_code(referral_code)
        if not code:
            return None
        q = select(Ambassador).where(Ambassador.referral_code == code)
        return (await self.session.execute(q)).scalar_one_or_none()

    async def get_profile(self, ambassador: Ambassador) -> Optional[Profile]:
        return await self.session.get(Profile, ambassador.user_id)

    async def list_ambassadors(self, active: Optional[bool] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        q = (
            select(Ambassador, Profile)
            .outerjoin(Profile, Profile.user_id == Ambassador.user_id)
            .order_by(Ambassador.created_at.desc(), Ambassador.id.desc())
        )
        if active is not None:
            q = q.where(Ambassador.active == active)
        if search:
            like = f"%{search.strip()}%"
            q = q.where(
                Ambassador.referral_code.ilike(like)
                | Profile.full_name.ilike(like)
                | Profile.email.ilike(like)
            )
        rows = (await self.session.execute(q)).all()
        return [ambassador_to_dict(a, p) for a, p in rows]

    async def set_active(self, ambassador_id: int, active: bool) -> Ambassador:
        ambassador = await self.get(ambassador_id)
        ambassador.active = active
        await self.session.flush()
        logger.info("Ambassador status changed", ambassador_id=ambassador_id, active=active)
        return ambassador

    async def set_public_page(
        self,
        ambassador_id: int,
        show_on_public_page: Optional[bool] = None,
        display_order: Optional[int] = None,
    ) -> Ambassador:
        ambassador = await self.get(ambassador_id)
        if show_on_public_page is not None:
            ambassador.show_on_public_page = show_on_public_page
        if display_order is not None:
            if display_order < 0:
                raise AmbassadorServiceError("Ordem de exibição não pode ser negativa", 400)
            ambassador.display_order = display_order
        await self.session.flush()
        logger.info(
            "Ambassador public page updated",
            ambassador_id=ambassador_id,
            show_on_public_page=ambassador.show_on_public_page,
            display_order=ambassador.display_order,
        )
        return ambassador

    async def list_public_directory(self) -> List[Dict[str, Any]]:
        """Active ambassadors who opted into the public page, by display_order."""
        q = (
            select(Ambassador, Profile)
            .outerjoin(Profile, Profile.user_id == Ambassador.user_id)
            .where(
                Ambassador.active == True,  # noqa: E712
                Ambassador.show_on_public_page == True,  # noqa: E712
            )
            .order_by(Ambassador.display_order, Ambassador.id)
        )
        rows = (await self.session.execute(q)).all()
        return [public_profile_to_dict(a, p) for a, p in rows]

    async def set_commission_rate(self, ambassador_id: int, rate: Optional[Any]) -> Ambassador:
        """Individual one-time rate override in percent; None restores the tier rate."""
        ambassador = await self.get(ambassador_id)
        if rate is not None:
            rate = to_decimal(rate)
            if rate < ZERO or rate > Decimal("100"):
                raise AmbassadorServiceError("Taxa de comissão deve estar entre 0 e 100", 400)
            rate = round_brl(rate)
        ambassador.custom_commission_rate = rate
        await self.session.flush()
        logger.info("Ambassador commission override set", ambassador_id=ambassador_id, rate=str(rate) if rate is not None else None)
        return ambassador

    async def update_payment_data(
        self,
        ambassador_id: int,
        pix_key: Optional[str] = None,
        bank_data: Optional[Dict[str, Any]] = None,
        payment_preference: Optional[str] = None,
        minimum_payout: Optional[Any] = None,
    ) -> Ambassador:
        ambassador = await self.get(ambassador_id)
        if payment_preference is not None:
            if payment_preference not in PAYMENT_PREFERENCES:
                raise AmbassadorServiceError(f"Forma de pagamento inválida: {payment_preference}", 400)
            ambassador.payment_preference = payment_preference
        if pix_key is not None:
            ambassador.pix_key = pix_key.strip() or None
        if bank_data is not None:
            ambassador.bank_data = bank_data or None
        if minimum_payout is not None:
            minimum = round_brl(minimum_payout)
            if minimum < ZERO:
                raise AmbassadorServiceError("Valor mínimo de saque não pode ser negativo", 400)
            ambassador.minimum_payout = minimum

        if ambassador.payment_preference == "pix" and not ambassador.pix_key:
            raise AmbassadorServiceError("Informe a chave PIX", 400)
        if ambassador.payment_preference == "bank_transfer" and not ambassador.bank_data:
            raise AmbassadorServiceError("Informe os dados bancários", 400)

        await self.session.flush()
        logger.info("Ambassador payment data updated", ambassador_id=ambassador_id, preference=ambassador.payment_preference)
        return ambassador

    async def get_stats(self, ambassador: Ambassador, today: Optional[date] = None) -> Dict[str, Any]:
        """Ambassador dashboard cards."""
        today = today or local_today()
        month_start = local_midnight_utc(today.replace(day=1))

        month_clicks = (await self.session.execute(
            select(func.count(AmbassadorClick.id)).where(
                AmbassadorClick.ambassador_id == ambassador.id,
                AmbassadorClick.created_at >= month_start,
            )
        )).scalar() or 0
        month_row = (await self.session.execute(
            select(func.count(AmbassadorReferral.id), func.coalesce(func.sum(AmbassadorReferral.commission_amount), 0))
            .where(
                AmbassadorReferral.ambassador_id == ambassador.id,
                AmbassadorReferral.created_at >= month_start,
                AmbassadorReferral.status != REFERRAL_CANCELLED,
            )
        )).one()

        clicks = ambassador.link_clicks or 0
        sales = ambassador.lifetime_sales or 0
        earnings = float(ambassador.total_earnings or 0)
        return {
            "total_clicks": clicks,
            "total_conversions": sales,
            "conversion_rate": _percent(sales, clicks),
            "total_earnings": earnings,
            "pending_commission": float(ambassador.pending_commission or 0),
            "this_month_clicks": month_clicks,
            "this_month_conversions": month_row[0] or 0,
            "this_month_earnings": float(round_brl(month_row[1] or 0)),
            "average_ticket": round(earnings / sales, 2) if sales else 0.0,
            "next_payout_date": ambassador.next_payout_date.isoformat() if ambassador.next_payout_date else None,
        }

    async def get_admin_stats(self, today: Optional[date] = None) -> Dict[str, Any]:
        """Program-wide admin dashboard."""
        today = today or local_today()
        month_start = local_midnight_utc(today.replace(day=1))

        totals = (await self.session.execute(
            select(
                func.count(Ambassador.id),
                func.coalesce(func.sum(Ambassador.link_clicks), 0),
                func.coalesce(func.sum(Ambassador.lifetime_sales), 0),
                func.coalesce(func.sum(Ambassador.pending_commission), 0),
            )
        )).one()
        active_count = (await self.session.execute(
            select(func.count(Ambassador.id)).where(Ambassador.active == True)  # noqa: E712
        )).scalar() or 0
        new_this_month = (await self.session.execute(
            select(func.count(Ambassador.id)).where(Ambassador.created_at >= month_start)
        )).scalar() or 0
        paid_total = (await self.session.execute(
            select(func.coalesce(func.sum(AmbassadorPayout.net_amount), 0)).where(AmbassadorPayout.status == PAYOUT_PAID)
        )).scalar() or 0
        rates = (await self.session.execute(
            select(Ambassador.lifetime_sales, Ambassador.link_clicks).where(Ambassador.link_clicks > 0)
        )).all()

        avg_conversion = round(sum(s / c * 100 for s, c in rates) / len(rates), 2) if rates else 0.0
        return {
            "total_ambassadors": totals[0] or 0,
            "active_ambassadors": active_count,
            "total_clicks": int(totals[1] or 0),
            "total_conversions": int(totals[2] or 0),
            "total_commissions_paid": float(round_brl(paid_total)),
            "total_pending": float(round_brl(totals[3] or 0)),
            "average_conversion_rate": avg_conversion,
            "new_this_month": new_this_month,
        }

