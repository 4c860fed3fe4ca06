# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service

Users belong to exactly one organization (org_id). Username and email
uniqueness is tenant-scoped. Passwords are hashed with bcrypt; session
tokens are managed separately (see session_service.py).
"""

import logging

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Organization, User
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def _bcrypt_rounds() -> int:
    try:
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    except RuntimeError:
        return 12


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt at the configured cost factor."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check; malformed hashes simply fail to verify."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(username: str, email: str, password: str, org_id: int) -> User:
    """
    Create a user inside an organization.

    Raises:
        NotFoundError: organization missing or inactive
        ConflictError: username or email already used in the organization
        PasswordValidationError: password too weak
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org or not org.is_active:
        raise NotFoundError("Organization not found")

    existing = db.session.query(User).filter(
        User.org_id == org_id,
        db.or_(User.username == username, User.email == email),
    ).first()
    if existing:
        raise ConflictError("Username or email already exists in this organization")

    user = User(
        org_id=org_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
    )

    db.session.add(user)
    db.session.commit()
    logger.info("Created user %s in org %s", user.id, org_id)
    return user


def authenticate(username: str, password: str, org_id: int | None = None) -> User | None:
    """
    Returns the User for valid credentials, None otherwise.

    username may also be the email. If org_id is given the lookup is scoped
    to that organization. Updates last_login_at on success.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    )
    if org_id is not None:
        query = query.filter(User.org_id == org_id)

    user = query.first()
    if not user:
        return None

    org = db.session.query(Organization).filter_by(id=user.org_id).first()
    if not org or not org.is_active:
        return None

    if not verify_password(password, user.password_hash):
        logger.info("Failed login for %r", username)
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def create_organization(name: str, code: str | None = None) -> Organization:
    if not name or not name.strip():
        raise ValidationError("Organization name is required")
    if code is not None and db.session.query(Organization.id).filter_by(code=code).first():
        raise ConflictError(f"Organization code {code!r} already exists")

    org = Organization(name=name.strip(), code=code)
    db.session.add(org)
    db.session.commit()
    logger.info("Created organization %s", org.id)
    return org
