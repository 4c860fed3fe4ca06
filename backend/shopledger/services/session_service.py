# Overview: Service-layer operations for session tokens; issue, validate and revoke.

"""
Session Token Management Service

Tokens are cryptographically random, handed to the client once in plaintext
and stored only as a SHA-256 hash. Each session captures the user's org_id
at login; that tenant context is immutable for the session lifetime.

- Absolute lifetime: SESSION_TTL_HOURS (config, default 24)
- Revocable on logout
- Rejected once the user or the organization is deactivated
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Organization, SessionToken, User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_HOURS = 24


@dataclass
class SessionContext:
    """Identity and tenant context for one authenticated request."""
    user: User
    session: SessionToken
    org_id: int


def generate_token() -> str:
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy, so a fast hash is enough here (unlike
    passwords, which use bcrypt).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _session_ttl() -> timedelta:
    try:
        hours = int(current_app.config.get("SESSION_TTL_HOURS", DEFAULT_SESSION_TTL_HOURS))
    except RuntimeError:
        hours = DEFAULT_SESSION_TTL_HOURS
    return timedelta(hours=hours)


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Create a session for the user.

    Returns (session_record, plaintext_token). Only the hash is persisted.

    Raises ValueError if the user is unknown or the organization is inactive.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")

    org = db.session.query(Organization).filter_by(id=user.org_id).first()
    if not org or not org.is_active:
        raise ValueError("Organization is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        org_id=user.org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _session_ttl(),
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Return the SessionContext for a live token, or None.

    None when the token is unknown, revoked or expired, or when its user or
    organization has been deactivated since login.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.is_expired(now):
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, now)
        logger.info("Revoked session %s: user deactivated", session.id)
        return None

    org = db.session.query(Organization).filter_by(id=session.org_id).first()
    if not org or not org.is_active:
        _revoke(session, now)
        logger.info("Revoked session %s: organization deactivated", session.id)
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, org_id=session.org_id)


def _revoke(session: SessionToken, now) -> None:
    session.is_revoked = True
    session.revoked_at = now
    db.session.commit()


def revoke_session(token: str) -> bool:
    """Returns True if a live session was revoked, False if none matched."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, utcnow())
    return True
