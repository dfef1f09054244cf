"""API key service - issuing, verifying, and managing domain-scoped API keys"""
import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Dict, List, Optional

import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from mailrelay.core.config import settings
from mailrelay.models.api_key import ApiKey
from mailrelay.models.domain import Domain

logger = logging.getLogger(__name__)

KEY_ID_LENGTH = 8
KEY_SECRET_LENGTH = 32
# The id must not contain the separator; the secret may
KEY_ID_ALPHABET = string.ascii_letters + string.digits + "-"
KEY_SECRET_ALPHABET = string.ascii_letters + string.digits + "_-"
# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


def _random_string(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def hash_api_key(api_key: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.API_KEY_HASH_ROUNDS)
    return bcrypt.hashpw(api_key.encode("utf-8"), salt).decode("utf-8")


def parse_api_key(api_key: str) -> Optional[str]:
    """Return the stored lookup prefix (e.g. "frs_AbC123xY") or None if malformed.

    Only the first two underscores separate fields; the secret may contain more.
    """
    if not api_key:
        return None
    prefix, sep1, rest = api_key.partition("_")
    key_id, sep2, secret = rest.partition("_")
    if not sep1 or not sep2 or prefix != settings.API_KEY_PREFIX or not key_id or not secret:
        return None
    return f"{prefix}_{key_id}"


def mask_api_key(api_key: str) -> str:
    """Hide the secret part: frs_AbC123xY_******..."""
    prefix, sep1, rest = api_key.partition("_")
    key_id, sep2, secret = rest.partition("_")
    if not sep1 or not sep2:
        return api_key
    return f"{prefix}_{key_id}_{'*' * len(secret)}"


def serialize_api_key(api_key: ApiKey) -> Dict:
    return {
        "id": api_key.id,
        "domain_id": api_key.domain_id,
        "domain": api_key.domain.domain if api_key.domain else None,
        "key_name": api_key.key_name,
        "key_prefix": api_key.key_prefix,
        "permissions": api_key.permissions or [],
        "last_used_at": api_key.last_used_at,
        "created_at": api_key.created_at
    }


def generate_api_key(user_id: str, domain_id: str, key_name: str,
                     permissions: Optional[List[str]] = None, db: Session = None) -> Dict:
    """Create a key bound to one of the user's verified domains.

    The plaintext key is only part of the return value; just its bcrypt hash
    and lookup prefix are stored.

    Raises:
        ValueError: If the domain is missing, not owned, not verified, or the name is taken
    """
    domain = db.query(Domain).filter(Domain.id == domain_id, Domain.user_id == user_id).first()
    if not domain:
        raise ValueError("Domain not found")
    if domain.status != "verified":
        raise ValueError("Domain must be verified before creating API keys")

    key_id = _random_string(KEY_ID_ALPHABET, KEY_ID_LENGTH)
    key_secret = _random_string(KEY_SECRET_ALPHABET, KEY_SECRET_LENGTH)
    key_prefix = f"{settings.API_KEY_PREFIX}_{key_id}"
    plaintext = f"{key_prefix}_{key_secret}"

    api_key = ApiKey(
        user_id=user_id,
        domain_id=domain_id,
        key_name=key_name,
        key_hash=hash_api_key(plaintext),
        key_prefix=key_prefix,
        permissions=list(permissions) if permissions else ["send"]
    )
    db.add(api_key)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError(f"An API key named '{key_name}' already exists") from e
    db.refresh(api_key)

    logger.info(f"API key {key_prefix} created for domain {domain.domain} by user {user_id}")
    return {**serialize_api_key(api_key), "key": plaintext}


def verify_api_key(api_key: str, db: Session) -> Optional[ApiKey]:
    """Resolve a presented key to its record, or None. Never raises for bad input."""
    prefix = parse_api_key(api_key)
    if prefix is None:
        return None

    encoded = api_key.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return None

    candidates = db.query(ApiKey).filter(ApiKey.key_prefix == prefix).all()
    for candidate in candidates:
        try:
            matches = bcrypt.checkpw(encoded, candidate.key_hash.encode("utf-8"))
        except ValueError:
            logger.warning(f"Stored hash for API key {candidate.id} is malformed")
            continue
        if matches:
            candidate.last_used_at = datetime.now(timezone.utc)
            db.commit()
            return candidate

    return None


def get_user_api_keys(user_id: str, db: Session) -> List[ApiKey]:
    return (
        db.query(ApiKey)
        .options(joinedload(ApiKey.domain))
        .filter(ApiKey.user_id == user_id)
        .order_by(ApiKey.created_at.desc())
        .all()
    )


def get_domain_api_keys(domain_id: str, db: Session) -> List[ApiKey]:
    return db.query(ApiKey).filter(ApiKey.domain_id == domain_id).order_by(ApiKey.created_at.desc()).all()


def _get_owned_key(key_id: str, user_id: str, db: Session) -> ApiKey:
    api_key = db.query(ApiKey).filter(ApiKey.id == key_id, ApiKey.user_id == user_id).first()
    if not api_key:
        raise ValueError("API key not found")
    return api_key


def update_api_key_permissions(key_id: str, user_id: str, permissions: List[str], db: Session) -> ApiKey:
    """Replace a key's permissions. Raises ValueError if the key is not the user's."""
    api_key = _get_owned_key(key_id, user_id, db)
    api_key.permissions = list(permissions)
    db.commit()
    db.refresh(api_key)
    return api_key


def delete_api_key(key_id: str, user_id: str, db: Session) -> None:
    """Delete a key. Raises ValueError if the key is not the user's."""
    api_key = _get_owned_key(key_id, user_id, db)
    db.delete(api_key)
    db.commit()
    logger.info(f"API key {api_key.key_prefix} deleted by user {user_id}")
