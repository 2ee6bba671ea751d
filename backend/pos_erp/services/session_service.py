# Overview: Session token lifecycle; issue, validate and revoke bearer tokens.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

The SessionToken row id is the holder-session key for advisory order locks,
so revoking a session is also the point where its locks are released.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from pos_erp.time_utils import utcnow

SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    user: User
    session: SessionToken

    @property
    def session_key(self) -> str:
        return str(self.session.id)


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token). The database stores only the hash.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _find_live(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter(
        SessionToken.token_hash == hash_token(token),
        SessionToken.revoked_at.is_(None),
    ).first()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle too long, revoked,
    or its user has been deactivated. Updates last_used_at otherwise.
    """
    session = _find_live(token)
    if not session:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        session.revoked_at = now
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        session.revoked_at = now
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(token: str) -> SessionToken | None:
    """Revoke a session token. Returns the revoked row, or None if not found."""
    session = _find_live(token)
    if not session:
        return None

    session.revoked_at = utcnow()
    db.session.commit()
    return session
