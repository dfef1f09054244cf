"""First-run setup route"""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from mailrelay.core.config import settings
from mailrelay.db.session import get_db
from mailrelay.services.auth_service import create_default_admin

router = APIRouter(prefix="/api/setup", tags=["setup"])
logger = logging.getLogger(__name__)


@router.post("")
def run_setup(db: Session = Depends(get_db)):
    """Create the default admin user from the environment"""
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        raise HTTPException(400, "ADMIN_EMAIL and ADMIN_PASSWORD must be set")

    user = create_default_admin(db)
    if user is None:
        return {"message": "Default user already exists"}
    return {"message": "Default user initialized successfully"}
