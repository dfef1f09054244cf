"""Delivery-status webhook routes"""
import json
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from mailrelay.db.session import get_db
from mailrelay.services.webhook_service import process_sns_envelope

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post("/ses")
async def ses_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle SES events delivered by SNS

    SNS posts with Content-Type text/plain, so the body is parsed by hand.
    """
    payload = await request.body()
    try:
        envelope = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("Invalid JSON in SES webhook payload")
        raise HTTPException(400, "Invalid JSON payload")

    if not isinstance(envelope, dict):
        raise HTTPException(400, "Invalid JSON payload")

    try:
        # Database work is blocking, keep it off the event loop
        return await run_in_threadpool(process_sns_envelope, envelope, db)
    except Exception as e:
        logger.error(f"Error processing SES webhook: {e}", exc_info=True)
        # Return 200 so SNS does not retry
        return {"message": "Event processing failed"}
