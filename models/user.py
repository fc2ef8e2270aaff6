import uuid
from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from database import Base, utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=new_id)
    # Unique as stored; lookups go through lower(email) (see services.users)
    email = Column(String(320), unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    is_realtor = Column(Boolean, nullable=False, default=False)
    # In-flight email change target, only meaningful until pending_email_expires_at
    pending_email = Column(String(320), nullable=True)
    pending_email_expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    otp_codes = relationship("OtpCode", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    magic_links = relationship(
        "MagicLink",
        back_populates="user",
        foreign_keys="MagicLink.user_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
