# Overview: Service-layer operations for session tokens; resolves bearer tokens to actors.

"""
Session Token Verification

WHY: Every state-changing operation first demands a valid bearer token and
resolves it to an {id, role} actor. Token issuance belongs to the external
auth service; create_session exists for the CLI and tests.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Inactive users lose their sessions on next use
"""

import hashlib
import secrets
from datetime import timedelta

from ..context import Actor
from ..models import SessionToken, User
from ..time_utils import to_naive_utc, utcnow


# Configuration constants
SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)  # Maximum session length
SESSION_IDLE_TIMEOUT = timedelta(hours=2)        # Activity timeout


def generate_token() -> str:
    """Return a 64-character hex token (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(session, user_id: int) -> tuple[SessionToken, str]:
    """
    Create a session for user_id.

    Returns (session_record, plaintext_token). Raises ValueError if the user
    does not exist or is inactive.
    """
    user = session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    plaintext_token = generate_token()
    now = utcnow()

    record = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        is_revoked=False,
    )
    session.add(record)
    session.commit()

    return record, plaintext_token


def _revoke(session, record: SessionToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason
    session.commit()


def verify_token(session, token: str | None) -> Actor | None:
    """
    Resolve a bearer token to an Actor.

    Returns None if the token is empty, unknown, expired, idle too long,
    revoked, or belongs to an inactive user. Never raises for bad input.
    """
    if not token:
        return None

    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if record is None:
        return None

    now = utcnow()

    if to_naive_utc(record.expires_at) < now:
        return None

    if now - to_naive_utc(record.last_used_at) > SESSION_IDLE_TIMEOUT:
        _revoke(session, record, "Idle timeout")
        return None

    user = record.user
    if user is None or not user.is_active:
        _revoke(session, record, "User account deactivated")
        return None

    record.last_used_at = now
    session.commit()

    return Actor(id=user.id, role=user.role)


def revoke_session(session, token: str, reason: str = "User logout") -> bool:
    """Revoke a session token. Returns False if it was not found."""
    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if record is None:
        return False

    _revoke(session, record, reason)
    return True
