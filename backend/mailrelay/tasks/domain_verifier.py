"""Background task that re-checks pending domains against SES"""
import asyncio
import logging

from mailrelay.core.config import settings
from mailrelay.core.logging import verifier_logger
from mailrelay.db.session import SessionLocal
from mailrelay.services.domain_service import refresh_pending_domains
from mailrelay.services.ses_service import get_ses_service

logger = logging.getLogger(__name__)


def run_verification_sweep() -> dict:
    """One pass over all pending domains, in its own session"""
    db = SessionLocal()
    try:
        return refresh_pending_domains(db, get_ses_service())
    finally:
        db.close()


async def domain_verifier_task():
    """Periodically check every pending domain's verification status

    The sweep itself is blocking (SES and database calls), so it runs in a worker thread.
    """
    while True:
        try:
            await asyncio.sleep(settings.DOMAIN_VERIFICATION_INTERVAL)
            summary = await asyncio.to_thread(run_verification_sweep)
            if summary["checked"] or summary["errors"]:
                verifier_logger.info(
                    f"Verification sweep: {summary['checked']} checked, {summary['verified']} verified, "
                    f"{summary['failed']} failed, {summary['errors']} errors"
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in domain verifier task: {e}", exc_info=True)
