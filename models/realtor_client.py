from sqlalchemy import CheckConstraint, Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from database import Base, utcnow
from models.user import new_id

CLIENT_STATUSES = ("invited", "active", "inactive")


class RealtorClient(Base):
    __tablename__ = "realtor_clients"
    __table_args__ = (
        Index("ix_realtor_clients_realtor_id", "realtor_id"),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in CLIENT_STATUSES) + ")",
            name="ck_realtor_clients_status",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    realtor_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    client_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    status = Column(String(10), nullable=False, default="invited")  # 'invited' | 'active' | 'inactive'
    nickname = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    activated_at = Column(DateTime, nullable=True)
    # Soft delete; at most one live (realtor_id, client_id) pair, enforced in services.invite
    deleted_at = Column(DateTime, nullable=True)

    client = relationship("User", foreign_keys=[client_id])
