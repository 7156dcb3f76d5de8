# backend/services/session_service.py
"""Token and session derivation.

A token is a dict of JWT claims. It is re-derived from the User row every time
it is issued or refreshed, so it can be in one of two states:

* partial: no User matched the token's email. Only ``id`` is set (and only if
  the identity provider handed us a user); ``role`` is absent, so every
  role-gated check on it fails.
* full: a snapshot of the User with role, projects and social media links.

A partial token becomes full on the first refresh after a matching User row
exists.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from models import ProjectReadWithRelations, Session, SessionUser, SocialMediaRead, User

logger = logging.getLogger(__name__)

Claims = Dict[str, Any]

# Claims a partial token may carry. Role and relations only ever come from a User row.
IDENTITY_CLAIMS = ("id", "name", "email", "picture")

async def find_user_by_email(db: AsyncSession, email: Optional[str]) -> Optional[User]:
    if not email:
        return None
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()

def snapshot_user(user: User) -> Claims:
    return {
        "id": user.id,
        "role": user.role.value,
        "name": user.name,
        "email": user.email,
        "picture": user.image,
        "projects": [ProjectReadWithRelations.model_validate(p).model_dump(mode="json") for p in user.projects],
        "social_media": [SocialMediaRead.model_validate(s).model_dump(mode="json") for s in user.social_media],
    }

async def derive_token(db: AsyncSession, token: Claims, user: Optional[Dict[str, Any]] = None) -> Claims:
    """Refresh `token` from the User whose email it carries.

    `user` is the identity-provider user, only given on sign-in.
    """
    db_user = await find_user_by_email(db, token.get("email"))
    if db_user is None:
        token = {key: token[key] for key in IDENTITY_CLAIMS if key in token}
        if user:
            token["id"] = user.get("id")
        logger.debug("No user record for token email; issuing partial token")
        return token
    return snapshot_user(db_user)

def session_from_token(token: Claims) -> Session:
    return Session(user=SessionUser.model_validate({
        "id": token.get("id"),
        "role": token.get("role"),
        "name": token.get("name"),
        "email": token.get("email"),
        "image": token.get("picture"),
        "projects": token.get("projects") or [],
        "social_media": token.get("social_media") or [],
    }))
