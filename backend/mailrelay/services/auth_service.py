"""Authentication service - business logic for user authentication"""
import bcrypt
import logging
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from mailrelay.core.config import settings
from mailrelay.core.metrics import login_attempts_counter
from mailrelay.db.redis import set_session, delete_session, get_session
from mailrelay.models.user import User

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    salt = bcrypt.gensalt(rounds=settings.PASSWORD_HASH_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    if not password_hash or not password:
        return False
    encoded = password.encode('utf-8')
    # bcrypt rejects inputs over 72 bytes; such a password can never match
    if len(encoded) > 72:
        return False
    return bcrypt.checkpw(encoded, password_hash.encode('utf-8'))


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "created_at": user.created_at.isoformat() if user.created_at else None
    }


def create_user(email: str, password: str, name: Optional[str] = None, db: Session = None) -> User:
    """Create a new user.

    Args:
        email: User email (must be unique).
        password: Raw password for the user.
        name: Optional display name.
        db: Database session (if None, creates its own).
    """
    from mailrelay.db.session import SessionLocal

    should_close = False
    if db is None:
        db = SessionLocal()
        should_close = True

    try:
        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            raise ValueError("Email already registered")
        if not password:
            raise ValueError("Password is required")

        user = User(email=email, password_hash=hash_password(password), name=name)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    finally:
        if should_close:
            db.close()


def authenticate_user(email: str, password: str, db: Session) -> Optional[User]:
    """Authenticate a user by email and password"""
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def get_user_by_id(user_id: str, db: Session) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def login_user(email: str, password: str, db: Session) -> dict:
    """Complete login flow: authenticate, create a bearer session, return user info

    Raises:
        ValueError: If the credentials are invalid
    """
    user = authenticate_user(email, password, db)
    if not user:
        login_attempts_counter.labels(status="failed").inc()
        raise ValueError("Invalid email or password")

    token = secrets.token_urlsafe(32)
    set_session(token, user.id)
    login_attempts_counter.labels(status="success").inc()

    logger.info(f"User logged in: {user.email} (ID: {user.id})")

    return {
        "user": serialize_user(user),
        "token": token
    }


def logout_user(token: Optional[str]) -> dict:
    """Logout flow: delete session"""
    if token and get_session(token):
        delete_session(token)
        logger.info(f"User logged out (session: {token[:8]}...)")

    return {"message": "Logged out successfully"}


def create_default_admin(db: Session = None) -> Optional[User]:
    """Create the admin account from ADMIN_EMAIL / ADMIN_PASSWORD if it does not exist yet

    Returns:
        The newly created user, or None when nothing was created
    """
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set - skipping default admin creation")
        return None

    try:
        user = create_user(settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD, name="Admin", db=db)
    except ValueError as e:
        if "already registered" in str(e):
            return None
        raise

    logger.info(f"Default admin user created: {user.email}")
    return user
