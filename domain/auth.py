"""Domain Entities - Auth"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from typing import Optional


class User(BaseModel):
    """Front-desk operator"""
    user_id: UUID = Field(default_factory=uuid4)
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool = False

    class Config:
        from_attributes = True


class UserInDB(User):
    """User with hashed password for DB storage"""
    hashed_password: str


class RequestContext(BaseModel):
    """Request-scoped acting user, used for attribution and log correlation only"""
    acting_user: str = "SYSTEM"
    request_id: UUID = Field(default_factory=uuid4)

    @staticmethod
    def for_user(user: User) -> "RequestContext":
        return RequestContext(acting_user=user.username)

    class Config:
        frozen = True
