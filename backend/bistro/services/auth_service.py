# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError, NotFound
from ..extensions import db
from ..models import User
from ..permissions import VALID_ROLES, requires
from ..validation import parse_choice, parse_text
from bistro.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "WEAK_PASSWORD"


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def hash_password(password: str, *, rounds: int | None = None) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    if rounds is None:
        rounds = _bcrypt_rounds()
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    full_name: str,
    password: str,
    role: str,
    *,
    rounds: int | None = None,
) -> User:
    """
    Create a staff account.

    Username must be unique or ValidationError is raised.
    """
    username = parse_text(username, "username", max_length=64, required=True)
    full_name = parse_text(full_name, "full_name", max_length=128, required=True)
    role = parse_choice(role, "role", VALID_ROLES)

    if db.session.query(User).filter_by(username=username).first():
        raise ValidationError(f"Username '{username}' already exists")

    user = User(
        username=username,
        full_name=full_name,
        password_hash=hash_password(password, rounds=rounds),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"Username '{username}' already exists")
    return user


@requires("MANAGE_STAFF")
def register_employee(actor, *, username: str, full_name: str, password: str, role: str) -> User:
    """Create a staff account on behalf of an administrator."""
    return create_user(username, full_name, password, role)


@requires("MANAGE_STAFF")
def set_user_active(actor, user_id: int, is_active: bool) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found", details={"user_id": user_id})
    user.is_active = bool(is_active)
    db.session.commit()
    return user


@requires("VIEW_STAFF")
def list_employees(actor, *, role: str | None = None, active_only: bool = True) -> list[User]:
    q = db.session.query(User)
    if role:
        q = q.filter(User.role == parse_choice(role, "role", VALID_ROLES))
    if active_only:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.full_name).all()


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, or None.

    Same None for unknown user, wrong password and disabled account so the
    caller cannot enumerate usernames.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
