"""OAuthToken model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index
from datetime import datetime, timezone
from dailyreel.models.base import Base


class OAuthToken(Base):
    """Provider credentials (encrypted) linked to an owner"""
    __tablename__ = "oauth_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    provider = Column(String(50), nullable=False, default="google_drive")
    access_token = Column(Text, nullable=False)  # Encrypted
    refresh_token = Column(Text)  # Encrypted
    expires_at = Column(DateTime(timezone=True))
    extra_data = Column(JSON)  # scopes
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index('ix_oauth_tokens_user_provider', 'user_id', 'provider', unique=True),
    )
