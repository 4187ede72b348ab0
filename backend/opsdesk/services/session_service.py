# Overview: Service-layer operations for operator sessions behind the shared admin key.

"""
Admin Session Service

WHY: The operator console is gated by one shared secret kept in the
`adminKey` record. A successful key check issues a short-lived random token;
routes only ever ask "is this call authorized".

SECURITY FEATURES:
- Key compared with hmac.compare_digest, or bcrypt.checkpw when the stored
  key is a bcrypt hash (the CLI always stores hashes)
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute expiry (ADMIN_SESSION_TTL_SECONDS, default 1 hour)
- Revocable on logout
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import timedelta

import bcrypt

from ..extensions import db
from ..models import AdminSession
from opsdesk.time_utils import utcnow
from .paths import ADMIN_KEY
from .record_store import RecordStore

DEFAULT_SESSION_TTL = timedelta(hours=1)
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hash_admin_key(key: str) -> str:
    """bcrypt hash of an admin key, as written by `flask system set-admin-key`."""
    return bcrypt.hashpw(key.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def set_admin_key(store: RecordStore, key: str, *, hashed: bool = True) -> None:
    if not key:
        raise ValueError("Admin key must not be empty")
    store.set(ADMIN_KEY, hash_admin_key(key) if hashed else key)


def check_admin_key(store: RecordStore, candidate: str | None) -> bool:
    """True when `candidate` matches the stored admin key."""
    if not candidate:
        return False
    stored = store.get(ADMIN_KEY)
    if not isinstance(stored, str) or not stored:
        return False
    if stored.startswith(BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(candidate.encode("utf-8"), stored.encode("utf-8"))
        except ValueError:
            return False
    return hmac.compare_digest(candidate.encode("utf-8"), stored.encode("utf-8"))


def create_session(
    *,
    ttl: timedelta = DEFAULT_SESSION_TTL,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[AdminSession, str]:
    """Create a session; returns (session, plaintext token). Only the hash is stored."""
    token = generate_token()
    now = utcnow()
    session = AdminSession(
        token_hash=hash_token(token),
        created_at=now,
        expires_at=now + ttl,
        is_revoked=False,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str | None) -> AdminSession | None:
    if not token:
        return None
    session = db.session.query(AdminSession).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return None
    if session.expires_at <= utcnow():
        return None
    return session


def revoke_session(token: str) -> bool:
    session = db.session.query(AdminSession).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def cleanup_expired_sessions() -> int:
    deleted = db.session.query(AdminSession).filter(AdminSession.expires_at < utcnow()).delete()
    db.session.commit()
    return deleted
