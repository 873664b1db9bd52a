from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import models, schemas
from ..utils.auth import get_password_hash, normalize_email


class CRUDUser:
    def get_user(self, db: Session, user_id: int) -> Optional[models.User]:
        return db.query(models.User).filter(models.User.id == user_id).first()

    def get_user_by_email(self, db: Session, email: str) -> Optional[models.User]:
        return (
            db.query(models.User)
            .filter(func.lower(models.User.email) == normalize_email(email))
            .first()
        )

    def create_user(self, db: Session, user: schemas.UserCreate) -> models.User:
        """Create the user plus any artist/provider profile its flags ask for."""
        db_user = models.User(
            email=normalize_email(user.email),
            password=get_password_hash(user.password),
            full_name=user.full_name.strip(),
            phone=user.phone,
            location=user.location,
            is_organizer=user.is_organizer,
            is_artist=user.is_artist,
            is_provider=user.is_provider,
            status=models.UserStatus.ACTIVE,
            wallet_balance=0,
            pending_balance=0,
        )
        if user.is_artist:
            db_user.artist_profile = models.ArtistProfile(
                stage_name=user.stage_name or db_user.full_name,
                location=user.location,
            )
        if user.is_provider:
            db_user.provider_profile = models.ProviderProfile(
                business_name=user.business_name or db_user.full_name,
                location=user.location,
            )
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        return db_user

    def list_by_audience(self, db: Session, audience: str) -> List[models.User]:
        """Active users with an email, narrowed to a bulk-email audience."""
        query = db.query(models.User).filter(
            models.User.status == models.UserStatus.ACTIVE,
            models.User.email.isnot(None),
        )
        if audience == "organizers":
            query = query.filter(models.User.is_organizer.is_(True))
        elif audience == "artists":
            query = query.filter(models.User.is_artist.is_(True))
        elif audience == "providers":
            query = query.filter(models.User.is_provider.is_(True))
        return query.order_by(models.User.id).all()


user = CRUDUser()  # Create an instance for easy import
