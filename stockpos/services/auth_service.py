"""
Authentication service.

Every sale, movement and count is attributed to a user, so every data
route sits behind a login.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Session tokens managed separately (see session_service.py)
"""
from __future__ import annotations

import bcrypt

from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from ..validation import ConflictError


MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise (including a
    malformed stored hash).
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def create_user(email: str, name: str, password: str, *, is_admin: bool = True) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ConflictError: If the email is already registered
        PasswordValidationError: If password is too short
    """
    email = normalize_email(email)
    if not email:
        raise ValueError("email is required")
    if not (name or "").strip():
        raise ValueError("name is required")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ConflictError("Email already registered")

    user = User(
        email=email,
        name=name.strip(),
        password_hash=hash_password(password),
        is_admin=is_admin,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
