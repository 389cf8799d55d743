# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Store staff accounts.

Ledger mutations are attributed to a user. Passwords are stored as bcrypt
hashes (cost 12) and must pass the strength rules below before hashing. The
demo user (AUTH_MODE=demo) gets a random password nobody knows.
"""

import re
import secrets

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..validation import ConflictError, ValidationError
from jewelpos.time_utils import utcnow


BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 8

PASSWORD_RULES = (
    (r"[A-Z]", "an uppercase letter"),
    (r"[a-z]", "a lowercase letter"),
    (r"\d", "a digit"),
    (r"[!@#$%^&*(),.'\":{}|<>]", "a special character"),
)


class PasswordValidationError(ValidationError):
    pass


def validate_password_strength(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    for pattern, label in PASSWORD_RULES:
        if not re.search(pattern, password):
            raise PasswordValidationError(f"Password must contain {label}")


def _bcrypt_hash(password: str) -> str:
    digest = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return digest.decode("utf-8")


def hash_password(password: str) -> str:
    """Strength-checked bcrypt hash of password."""
    validate_password_strength(password)
    return _bcrypt_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    # a malformed stored hash counts as a mismatch
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(username: str, email: str, password: str) -> User:
    """
    Raises ValidationError for blank fields, PasswordValidationError for a
    weak password and ConflictError when the username or email is taken.
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise ValidationError("username and email are required")

    taken = (
        db.session.query(User.id)
        .filter(db.or_(User.username == username, User.email == email))
        .first()
    )
    if taken:
        raise ConflictError("Username or email already exists")

    user = User(username=username, email=email, password_hash=hash_password(password))
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(login: str, password: str) -> User | None:
    """
    Match login against username or email, then check the password.

    Inactive and demo users never authenticate. Success stamps last_login_at.
    """
    user = (
        db.session.query(User)
        .filter(
            db.or_(User.username == login, User.email == login),
            User.is_active.is_(True),
            User.is_demo.is_(False),
        )
        .first()
    )
    if user is None or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def ensure_demo_user() -> User:
    """The demo user, created on first use. Only called when AUTH_MODE=demo."""
    username = current_app.config.get("DEMO_USERNAME", "demo")
    user = db.session.query(User).filter_by(username=username, is_demo=True).first()
    if user:
        return user

    user = User(
        username=username,
        email=f"{username}@demo.local",
        password_hash=_bcrypt_hash(secrets.token_urlsafe(32)),
        is_demo=True,
    )
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Created demo user %r", username)
    return user
