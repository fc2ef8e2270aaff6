from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from database import Base, utcnow
from models.user import new_id


class MagicLink(Base):
    __tablename__ = "magic_links"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    # Set when a realtor generates the link on behalf of the owner; survives creator deletion
    created_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    redirect_url = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)  # audit only

    user = relationship("User", back_populates="magic_links", foreign_keys=[user_id])
