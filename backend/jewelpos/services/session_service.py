# Overview: Service-layer operations for session; token issue, validation and revocation.

"""
Bearer sessions with absolute and idle timeouts and explicit revocation.

The client holds the only plaintext copy of a token; the database keeps its
SHA-256 digest. Lifetimes come from SESSION_ABSOLUTE_HOURS and
SESSION_IDLE_MINUTES.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import SessionToken, User
from ..validation import NotFoundError
from jewelpos.time_utils import utcnow


DEFAULT_ABSOLUTE_HOURS = 24
DEFAULT_IDLE_MINUTES = 120


@dataclass
class SessionContext:
    """
    Who is calling and how.

    mode is "password" for token sessions and "demo" for the injected demo
    session (see decorators.require_auth); session is None in demo mode.
    """
    user: User
    session: SessionToken | None
    mode: str = "password"


def _lifetimes() -> tuple[timedelta, timedelta]:
    absolute, idle = DEFAULT_ABSOLUTE_HOURS, DEFAULT_IDLE_MINUTES
    if has_app_context():
        absolute = current_app.config.get("SESSION_ABSOLUTE_HOURS", absolute)
        idle = current_app.config.get("SESSION_IDLE_MINUTES", idle)
    return timedelta(hours=absolute), timedelta(minutes=idle)


def bearer_token_from(header: str | None) -> str | None:
    """"Bearer abc" -> "abc"; anything else -> None."""
    if not header or not header.startswith("Bearer "):
        return None
    return header.split(" ", 1)[1].strip() or None


def hash_token(token: str) -> str:
    # tokens are 32 random bytes, so a plain digest is enough
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_live(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """Open a session for user_id. Returns (row, plaintext token)."""
    if db.session.get(User, user_id) is None:
        raise NotFoundError("User not found")

    token = secrets.token_hex(32)
    now = utcnow()
    absolute, _ = _lifetimes()

    row = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + absolute,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(row)
    db.session.commit()
    return row, token


def _revoke(row: SessionToken, reason: str) -> None:
    row.is_revoked = True
    row.revoked_at = utcnow()
    row.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its caller, or None.

    Expired, idle, revoked and deactivated-user sessions all give None; the
    idle and deactivated cases are revoked on the way out. A hit refreshes
    last_used_at.
    """
    row = _find_live(token)
    if row is None:
        return None

    now = utcnow()
    _, idle = _lifetimes()
    if row.expires_at < now:
        return None
    if now - row.last_used_at > idle:
        _revoke(row, "Idle timeout")
        return None
    if row.user is None or not row.user.is_active:
        _revoke(row, "User account deactivated")
        return None

    row.last_used_at = now
    db.session.commit()
    return SessionContext(user=row.user, session=row)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when the token was unknown or already revoked."""
    row = _find_live(token)
    if row is None:
        return False
    _revoke(row, reason)
    return True
