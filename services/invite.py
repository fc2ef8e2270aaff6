"""Realtor to client invitations and relationship lookups."""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from database import utcnow
from errors import already_exists
from logs import log_action
from models.realtor_client import RealtorClient
from models.user import User
from services.email.base import EmailSender
from services.email.deliver import send_template
from services.email.types import MagicLinkEmail
from services.magic_link import CreateMagicLinkOptions, build_magic_link_url, create_magic_link
from services.users import canonical_email, create_user, get_user_by_email

DEFAULT_INVITE_REDIRECT = "/forms"


@dataclass
class InviteClientOptions:
    realtor_id: str
    email: str
    name: str
    redirect_url: str = DEFAULT_INVITE_REDIRECT
    ip_address: Optional[str] = None


def live_relationships(db: Session, realtor_id: str):
    return db.query(RealtorClient).filter(
        RealtorClient.realtor_id == realtor_id,
        RealtorClient.deleted_at.is_(None),
    )


def get_relationship(db: Session, realtor_id: str, relationship_id: str) -> Optional[RealtorClient]:
    return live_relationships(db, realtor_id).filter(RealtorClient.id == relationship_id).first()


def get_relationship_for_client(db: Session, realtor_id: str, client_id: str) -> Optional[RealtorClient]:
    return live_relationships(db, realtor_id).filter(RealtorClient.client_id == client_id).first()


def list_relationships(db: Session, realtor_id: str, status: str | None = None) -> List[RealtorClient]:
    query = live_relationships(db, realtor_id)
    if status:
        query = query.filter(RealtorClient.status == status)
    return query.order_by(RealtorClient.created_at.desc()).all()


async def send_invite_link(db: Session, sender: EmailSender, relationship: RealtorClient,
                           redirect_url: str = DEFAULT_INVITE_REDIRECT, ip_address: str | None = None) -> None:
    client = relationship.client
    token = create_magic_link(db, CreateMagicLinkOptions(
        user_id=client.id,
        created_by=relationship.realtor_id,
        redirect_url=redirect_url,
        ip_address=ip_address,
    ))
    await send_template(sender, client.email, MagicLinkEmail(url=build_magic_link_url(token, redirect_url)))


async def invite_client(db: Session, sender: EmailSender, options: InviteClientOptions) -> RealtorClient:
    """Find or create the client user, link it to the realtor and email a magic link.

    Raises ALREADY_EXISTS when the realtor already has a live relationship with that email.
    """
    email = canonical_email(options.email)
    existing = live_relationships(db, options.realtor_id).join(
        User, RealtorClient.client_id == User.id
    ).filter(func.lower(User.email) == email).first()
    if existing:
        raise already_exists("Client", existing.id)

    client = get_user_by_email(db, email) or create_user(db, email, name=options.name)
    relationship = RealtorClient(realtor_id=options.realtor_id, client_id=client.id, status="invited")
    db.add(relationship)
    db.commit()
    db.refresh(relationship)

    await send_invite_link(db, sender, relationship, options.redirect_url, options.ip_address)
    log_action("client_invited", context={"realtor_id": options.realtor_id, "relationship_id": relationship.id})
    return relationship


def activate_client(db: Session, realtor_id: str, client_id: str) -> bool:
    """invited -> active. No-op for any other status."""
    count = db.query(RealtorClient).filter(
        RealtorClient.realtor_id == realtor_id,
        RealtorClient.client_id == client_id,
        RealtorClient.status == "invited",
        RealtorClient.deleted_at.is_(None),
    ).update({RealtorClient.status: "active", RealtorClient.activated_at: utcnow()}, synchronize_session=False)
    db.commit()
    return count == 1
