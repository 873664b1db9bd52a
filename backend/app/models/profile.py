# backend/app/models/profile.py

from sqlalchemy import Column, String, Text, ForeignKey, Integer, Boolean, BigInteger
from sqlalchemy.orm import relationship

from .base import BaseModel


class ArtistProfile(BaseModel):
    """Performer profile attached to a user with ``is_artist`` set."""

    __tablename__ = "artist_profiles"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False,
        index=True,
    )
    stage_name = Column(String, index=True, nullable=False)
    bio = Column(Text, nullable=True)
    genre = Column(String, nullable=True)
    location = Column(String, nullable=True)
    base_price = Column(BigInteger, nullable=True)  # cents
    is_available = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="artist_profile")


class ProviderProfile(BaseModel):
    """Vendor/crew profile (sound, lighting, catering, ...)."""

    __tablename__ = "provider_profiles"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False,
        index=True,
    )
    business_name = Column(String, index=True, nullable=False)
    category = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    base_price = Column(BigInteger, nullable=True)  # cents
    is_available = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="provider_profile")
