# Overview: User accounts, password hashing and credential checks.

"""
Authentication Service

WHY: Every sale, payment and stock movement is attributed to a user, and
override authorizations are checked against the same credentials. Uses
bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import ROLES, User
from pos_erp.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Malformed hashes (ValueError from bcrypt) count as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    name: str | None = None,
    role: str = "cashier",
    email: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: unknown role, or username/email already taken
        PasswordValidationError: password doesn't meet requirements
    """
    if role not in ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of {list(ROLES)}")

    filters = [User.username == username]
    if email:
        filters.append(User.email == email)
    existing = db.session.query(User).filter(db.or_(*filters)).first()
    if existing:
        raise ValueError("Username or email already exists")

    user = User(
        username=username,
        name=name or username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def find_active_user(username: str) -> User | None:
    return db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid, None otherwise. Updates last_login_at
    on success.
    """
    user = find_active_user(username)
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
