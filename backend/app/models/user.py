# backend/app/models/user.py

from sqlalchemy import Boolean, Column, Integer, String, DateTime, BigInteger
from sqlalchemy.orm import relationship
from .base import BaseModel
from .types import CaseInsensitiveEnum
import enum


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


class User(BaseModel):
    """One human, many roles: organizer, artist and provider are flags."""

    __tablename__ = "users"

    id           = Column(Integer, primary_key=True, index=True)
    email        = Column(String, unique=True, index=True, nullable=False)
    password     = Column(String, nullable=False)
    full_name    = Column(String, nullable=False)
    phone        = Column(String, nullable=True)
    avatar_url   = Column(String, nullable=True)
    location     = Column(String, nullable=True)

    is_organizer = Column(Boolean, default=False, nullable=False)
    is_artist    = Column(Boolean, default=False, nullable=False)
    is_provider  = Column(Boolean, default=False, nullable=False)
    is_verified  = Column(Boolean, default=False, nullable=False)

    status       = Column(CaseInsensitiveEnum(UserStatus, name="userstatus"), default=UserStatus.ACTIVE, nullable=False)
    suspended_at = Column(DateTime, nullable=True)
    banned_at    = Column(DateTime, nullable=True)

    # Money is held in integer cents (ZAR)
    wallet_balance  = Column(BigInteger, default=0, nullable=False)
    pending_balance = Column(BigInteger, default=0, nullable=False)

    # Saved payout destination; only the last four digits are kept
    bank_name           = Column(String, nullable=True)
    bank_code           = Column(String, nullable=True)
    account_last4       = Column(String(4), nullable=True)
    paystack_recipient_code = Column(String, nullable=True)

    artist_profile = relationship(
        "ArtistProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    provider_profile = relationship(
        "ProviderProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    admin = relationship("AdminUser", back_populates="user", uselist=False)

    @property
    def first_name(self) -> str:
        return (self.full_name or "").split(" ")[0]

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.admin is not None

    @property
    def admin_role(self):
        return self.admin.role.value if self.admin is not None else None
