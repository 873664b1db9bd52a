from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class AdminRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MODERATOR = "moderator"
    SUPPORT = "support"


class AdminUser(BaseModel):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(CaseInsensitiveEnum(AdminRole, name="adminrole"), nullable=False, default=AdminRole.ADMIN)

    user = relationship("User", back_populates="admin")

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_admin_users_user_id"),
    )
