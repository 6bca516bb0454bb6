"""
Cron tasks functions
"""
import logging
from typing import Optional, Dict

import db
from services.payments import StripePaymentService
from settings import Settings

logger = logging.getLogger(__name__)


async def reconcile_task(settings: Optional[Settings] = None) -> Optional[Dict[str, int]]:
    """
    Credit paid checkout sessions whose webhook never arrived

    Runs periodically from the application lifespan. Sessions already in
    wallet_transactions are skipped, so overlapping runs credit nothing twice.

    Returns:
        Reconciliation summary, or None when skipped
    """
    settings = settings or Settings()

    if db.SessionLocal is None:
        logger.error("Database not initialized. Skipping reconcile task.")
        return None

    if not settings.stripe.is_configured:
        logger.info("Stripe not configured. Skipping reconcile task.")
        return None

    service = StripePaymentService(settings)
    async with db.SessionLocal() as session:
        try:
            return await service.reconcile_recent_sessions(session)
        except Exception:
            await session.rollback()
            raise
