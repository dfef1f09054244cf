"""Auth API routes"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from mailrelay.schemas.auth import LoginRequest, LoginResponse, CurrentUserResponse
from mailrelay.services.auth_service import login_user, logout_user, get_user_by_id, serialize_user
from mailrelay.core.security import require_auth, get_bearer_token
from mailrelay.db.session import get_db

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=LoginResponse)
def login(request_data: LoginRequest, db: Session = Depends(get_db)):
    """Login user and issue a bearer token"""
    try:
        return login_user(request_data.email, request_data.password, db)
    except ValueError as e:
        raise HTTPException(401, str(e))


@router.post("/logout")
def logout(request: Request):
    """Logout user"""
    return logout_user(get_bearer_token(request))


@router.get("/me", response_model=CurrentUserResponse)
def get_me(user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """Get the current user"""
    user = get_user_by_id(user_id, db)
    if not user:
        raise HTTPException(401, "User not found")
    return {"user": serialize_user(user)}
