# backend/opsdesk/models.py
from __future__ import annotations
from .extensions import db
from opsdesk.time_utils import to_utc_z


class Record(db.Model):
    """
    One JSON record of the live store.

    The store namespace is two levels deep on disk: the first path segment
    is the collection ("Users", "Orders", ...) and the second is the record
    id. A collection-level leaf value such as the singleton "adminKey" is kept
    under record_id "". Anything deeper than two segments lives inside `data`.
    """
    __tablename__ = "records"
    __table_args__ = (
        db.UniqueConstraint("collection", "record_id", name="uq_records_collection_record"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(128), nullable=False, index=True)
    record_id = db.Column(db.String(128), nullable=False, default="")
    data = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Record {self.collection}/{self.record_id}>"


class AdminSession(db.Model):
    """
    Short-lived operator session issued after the admin key check.

    Tokens are random and only their SHA-256 hash is stored.
    """
    __tablename__ = "admin_sessions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
