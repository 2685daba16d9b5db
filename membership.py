import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import NotFoundError, ValidationError
from models import Couple, Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserScope:
    """Who is asking, and whose rows they may see."""

    user_id: int
    couple_id: Optional[int]
    visible_user_ids: frozenset[int]

    @classmethod
    def solo(cls, user_id: int) -> "UserScope":
        return cls(user_id=user_id, couple_id=None, visible_user_ids=frozenset({user_id}))

    def can_see(self, user_id: int) -> bool:
        return user_id in self.visible_user_ids


class ProfileDirectory:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> Optional[Profile]:
        return self.session.get(Profile, user_id)

    def ensure_profile(self, user_id: int, name: Optional[str] = None) -> Profile:
        profile = self.get(user_id)
        if profile:
            return profile
        profile = Profile(id=user_id, name=(name or "").strip() or f"user-{user_id}")
        self.session.add(profile)
        self.session.commit()
        logger.info(f"profile_created: user_id={user_id}")
        return profile

    def couple_id_for(self, user_id: int) -> Optional[int]:
        profile = self.get(user_id)
        return profile.couple_id if profile else None

    def member_ids(self, couple_id: int) -> list[int]:
        stmt = (
            select(Profile.id).where(Profile.couple_id == couple_id).order_by(Profile.id)
        )
        return list(self.session.scalars(stmt).all())

    def create_couple(self, user_id: int, name: str) -> Couple:
        clean = name.strip()
        if not clean:
            raise ValidationError("Couple name is required")
        profile = self.ensure_profile(user_id)
        if profile.couple_id is not None:
            raise ValidationError("User already belongs to a couple")
        couple = Couple(name=clean, created_by=user_id)
        self.session.add(couple)
        self.session.flush()
        profile.couple_id = couple.id
        self.session.commit()
        logger.info(f"couple_created: couple_id={couple.id} user_id={user_id}")
        return couple

    def join_couple(self, user_id: int, couple_id: int) -> Profile:
        if self.session.get(Couple, couple_id) is None:
            raise NotFoundError("Couple not found")
        profile = self.ensure_profile(user_id)
        if profile.couple_id not in (None, couple_id):
            raise ValidationError("User already belongs to another couple")
        profile.couple_id = couple_id
        self.session.commit()
        logger.info(f"couple_joined: couple_id={couple_id} user_id={user_id}")
        return profile

    def leave_couple(self, user_id: int) -> None:
        profile = self.get(user_id)
        if not profile or profile.couple_id is None:
            raise ValidationError("User is not in a couple")
        couple_id = profile.couple_id
        profile.couple_id = None
        self.session.commit()
        logger.info(f"couple_left: couple_id={couple_id} user_id={user_id}")


class MembershipResolver:
    def __init__(self, directory: ProfileDirectory) -> None:
        self.directory = directory

    def visible_user_ids(self, user_id: int) -> frozenset[int]:
        couple_id = self.directory.couple_id_for(user_id)
        if couple_id is None:
            return frozenset({user_id})
        return frozenset(self.directory.member_ids(couple_id)) | {user_id}

    def scope_for(self, user_id: int) -> UserScope:
        couple_id = self.directory.couple_id_for(user_id)
        return UserScope(
            user_id=user_id,
            couple_id=couple_id,
            visible_user_ids=self.visible_user_ids(user_id),
        )


def resolve_scope(session: Session, user_id: int) -> UserScope:
    return MembershipResolver(ProfileDirectory(session)).scope_for(user_id)
