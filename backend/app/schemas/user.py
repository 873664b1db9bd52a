# backend/app/schemas/user.py

from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from ..models.user import UserStatus


class UserBase(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1)
    phone: Optional[str] = None
    location: Optional[str] = None
    is_organizer: bool = False
    is_artist: bool = False
    is_provider: bool = False


class UserCreate(UserBase):
    password: str = Field(min_length=8)
    # Used to seed the artist/provider profile when the matching flag is set
    stage_name: Optional[str] = None
    business_name: Optional[str] = None


class UserResponse(UserBase):
    id: int
    status: UserStatus
    is_verified: bool
    avatar_url: str | None = None
    wallet_balance: int
    pending_balance: int
    is_admin: bool = False
    admin_role: str | None = None

    model_config = {
        "from_attributes": True
    }


# TokenData for extracting “sub” (email) from JWT
class TokenData(BaseModel):
    email: Optional[str] = None
