from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from database import Base, utcnow
from models.user import new_id


class OtpCode(Base):
    """Single-use 6-digit code. Plaintext is acceptable: short TTL, attempt-capped."""
    __tablename__ = "otp_codes"
    __table_args__ = (
        Index("ix_otp_codes_user_used_created", "user_id", "used_at", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    code = Column(String(6), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="otp_codes")
