from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from database import Base, utcnow
from models.user import new_id


class UserSession(Base):
    """Server-side record backing a bearer/cookie session token."""
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    # Fixed window from creation, never extended by activity
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_active_at = Column(DateTime, default=utcnow, nullable=False)
    last_otp_verified_at = Column(DateTime, nullable=True)
    invalidated_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="sessions")
