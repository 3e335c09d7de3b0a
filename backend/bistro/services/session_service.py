# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_TTL_HOURS, default 24h)
- Revocable on logout
- Role snapshotted at login; a deactivated user invalidates all sessions
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import SessionToken, User
from ..permissions import Actor
from bistro.time_utils import utcnow


DEFAULT_SESSION_TTL = timedelta(hours=24)


def _session_ttl() -> timedelta:
    if has_app_context():
        hours = current_app.config.get("SESSION_TTL_HOURS")
        if hours:
            return timedelta(hours=hours)
    return DEFAULT_SESSION_TTL


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Hash token for database storage using SHA-256."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user: User) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    if not user.is_active:
        raise ValueError("User account is disabled")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        role=user.role,
        created_at=now,
        expires_at=now + _session_ttl(),
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str | None) -> Actor | None:
    """
    Validate session token and return the Actor if valid.

    Returns None if:
    - Token is missing, unknown, expired, or revoked
    - User account was deactivated after login
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None

    if session.expires_at <= utcnow():
        return None

    user = db.session.get(User, session.user_id)
    if not user or not user.is_active:
        return None

    return Actor(user_id=user.id, role=session.role)


def revoke_session(token: str) -> bool:
    """Revoke a session (logout). Returns False if the token was unknown."""
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session:
        return False

    if not session.is_revoked:
        session.is_revoked = True
        session.revoked_at = utcnow()
        db.session.commit()
    return True
