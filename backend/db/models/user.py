from datetime import datetime, timezone
import uuid
from sqlalchemy import Column, String, DateTime, Index
from db.session import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    username = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    avatar = Column(String(1024), nullable=False)
    cover_image = Column(String(1024), default="", nullable=False)
    password_hash = Column(String(255), nullable=False)
    # Single active session: the one refresh token that is currently honored
    refresh_token = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)
    __table_args__ = (
        Index("ix_accounts_username_email", "username", "email"),
    )
