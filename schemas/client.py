from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Literal, Optional

ClientStatus = Literal["invited", "active", "inactive"]


class ClientOut(BaseModel):
    id: str
    client_id: str
    name: str
    email: str
    nickname: Optional[str] = None
    status: ClientStatus
    created_at: datetime
    activated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ClientInvite(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=100)
    redirect_url: str = "/forms"


class ClientInviteOut(BaseModel):
    relationship_id: str


class ResendInvite(BaseModel):
    redirect_url: str = "/forms"


class ClientNicknameUpdate(BaseModel):
    nickname: Optional[str] = Field(default=None, max_length=100)


class ClientStatusUpdate(BaseModel):
    status: Literal["active", "inactive"]
