# backend/app/services/payout_notify.py
"""Ask the e-mail function to send the payout receipt to the ambassador."""
from typing import Optional

import httpx

from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings

logger = get_logger(__name__)


async def send_payout_email(payout_id: int, action: str = "paid", webhook_url: Optional[str] = None) -> bool:
    """
    Single attempt, no retry. Returns True if the endpoint accepted the request.
    Failures are logged and reported to the caller; the payout itself is already committed.
    """
    url = webhook_url or get_settings().PAYOUT_EMAIL_WEBHOOK_URL
    if not url:
        logger.warning("PAYOUT_EMAIL_WEBHOOK_URL not set, skip payout e-mail", payout_id=payout_id)
        return False
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            r = await client.post(url, json={"payout_id": payout_id, "action": action})
            if r.is_success:
                logger.info("Payout e-mail requested", payout_id=payout_id, action=action)
                return True
            logger.error(
                "Payout e-mail request failed",
                payout_id=payout_id,
                status=r.status_code,
                body=r.text[:500],
            )
            return False
    except httpx.HTTPError as e:
        logger.error("Payout e-mail request error", payout_id=payout_id, error=str(e))
        return False
