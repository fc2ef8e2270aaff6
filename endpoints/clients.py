from typing import List, Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from database import get_db
from errors import AppError, AppErrorCode, not_found
from models.realtor_client import RealtorClient
from rate_limit import client_ip
from schemas.client import (
    ClientInvite,
    ClientInviteOut,
    ClientNicknameUpdate,
    ClientOut,
    ClientStatus,
    ClientStatusUpdate,
    ResendInvite,
)
from schemas.user import SuccessResponse
from security import AuthContext, get_auth_context
from services.email.base import EmailSender
from services.email.factory import get_email_sender
from services.invite import (
    InviteClientOptions,
    get_relationship,
    invite_client,
    list_relationships,
    send_invite_link,
)

router = APIRouter()


def to_client_out(relationship: RealtorClient) -> ClientOut:
    client = relationship.client
    return ClientOut(
        id=relationship.id,
        client_id=client.id,
        name=client.name,
        email=client.email,
        nickname=relationship.nickname,
        status=relationship.status,
        created_at=relationship.created_at,
        activated_at=relationship.activated_at,
    )


def get_owned_relationship(db: Session, context: AuthContext, relationship_id: str) -> RealtorClient:
    relationship = get_relationship(db, context.user.id, relationship_id)
    if not relationship:
        raise not_found("Client", relationship_id)
    return relationship


@router.get("", response_model=List[ClientOut])
async def list_clients(
    status: Optional[ClientStatus] = None,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Clients of the signed-in realtor, newest first"""
    return [to_client_out(r) for r in list_relationships(db, context.user.id, status)]


@router.get("/{relationship_id}", response_model=ClientOut)
async def get_client(relationship_id: str, context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return to_client_out(get_owned_relationship(db, context, relationship_id))


@router.post("/invite", response_model=ClientInviteOut)
async def invite(
    data: ClientInvite,
    request: Request,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    relationship = await invite_client(db, sender, InviteClientOptions(
        realtor_id=context.user.id,
        email=data.email,
        name=data.name,
        redirect_url=data.redirect_url,
        ip_address=client_ip(request),
    ))
    return ClientInviteOut(relationship_id=relationship.id)


@router.post("/{relationship_id}/resend-invite", response_model=SuccessResponse)
async def resend_invite(
    relationship_id: str,
    data: ResendInvite,
    request: Request,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    relationship = get_owned_relationship(db, context, relationship_id)
    if relationship.status != "invited":
        raise AppError(AppErrorCode.BAD_REQUEST, "Can only resend invites to clients with invited status")
    await send_invite_link(db, sender, relationship, data.redirect_url, client_ip(request))
    return SuccessResponse()


@router.put("/{relationship_id}/nickname", response_model=SuccessResponse)
async def update_nickname(
    relationship_id: str,
    data: ClientNicknameUpdate,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    relationship = get_owned_relationship(db, context, relationship_id)
    relationship.nickname = (data.nickname or "").strip() or None
    db.commit()
    return SuccessResponse()


@router.put("/{relationship_id}/status", response_model=SuccessResponse)
async def update_status(
    relationship_id: str,
    data: ClientStatusUpdate,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Switch between active and inactive; 'invited' only changes when the client signs in"""
    relationship = get_owned_relationship(db, context, relationship_id)
    relationship.status = data.status
    db.commit()
    return SuccessResponse()
