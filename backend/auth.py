# backend/auth.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from authlib.integrations.starlette_client import OAuth
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from config import GITHUB_CLIENT_ID, GITHUB_CLIENT_SECRET, JWT_ALGORITHM, JWT_SECRET, SESSION_MAX_AGE_DAYS
from database import get_session
from models import Role, Session, User
from services import session_service

logger = logging.getLogger(__name__)

oauth = OAuth()
oauth.register(
    name='github', client_id=GITHUB_CLIENT_ID, client_secret=GITHUB_CLIENT_SECRET,
    access_token_url='https://github.com/login/oauth/access_token',
    authorize_url='https://github.com/login/oauth/authorize',
    api_base_url='https://api.github.com/',
    client_kwargs={'scope': 'read:user user:email'}
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/github", auto_error=False)

PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.SUPERADMIN})

def create_access_token(claims: dict) -> str:
    to_encode = claims.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"iat": now, "exp": now + timedelta(days=SESSION_MAX_AGE_DAYS)})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_access_token(token: str) -> dict:
    claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    claims.pop("iat", None)
    claims.pop("exp", None)
    return claims

async def fetch_github_profile(token: dict) -> dict:
    resp = await oauth.github.get('user', token=token)
    resp.raise_for_status()
    data = resp.json()
    email = data.get('email')
    if not email:
        # Private emails are only listed by the emails endpoint.
        emails_resp = await oauth.github.get('user/emails', token=token)
        if emails_resp.status_code == 200:
            primary = next((e for e in emails_resp.json() if e.get('primary') and e.get('verified')), None)
            email = primary['email'] if primary else None
    return {
        "github_id": str(data['id']), "name": data.get('name') or data.get('login'),
        "email": email, "image": data.get('avatar_url'),
    }

async def find_or_create_user(session: AsyncSession, profile: dict) -> User:
    github_id = profile.get('github_id')
    if not github_id: raise HTTPException(status_code=400, detail="Invalid user info from GitHub")

    result = await session.execute(select(User).where(User.github_id == github_id))
    db_user = result.scalar_one_or_none()

    if db_user:
        db_user.name = profile.get('name')
        db_user.image = profile.get('image')
        if profile.get('email'):
            db_user.email = profile['email']
    else:
        db_user = User(
            github_id=github_id, name=profile.get('name'), email=profile.get('email'),
            image=profile.get('image'), role=Role.USER
        )
        logger.info("Creating user for GitHub account %s", github_id)
    session.add(db_user)
    await session.commit()
    await session.refresh(db_user)
    return db_user

# --- Request context ---
@dataclass
class RequestContext:
    """Per-request view of who is calling. `session` is None for anonymous callers."""
    session: Optional[Session] = None

    @property
    def role(self) -> Optional[Role]:
        return self.session.user.role if self.session else None

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user.id if self.session else None

async def get_request_context(
    token: Optional[str] = Depends(oauth2_scheme), session: AsyncSession = Depends(get_session)
) -> RequestContext:
    if not token:
        return RequestContext()
    try:
        claims = decode_access_token(token)
    except JWTError as e:
        logger.info("Rejected session token: %s", e)
        return RequestContext()
    claims = await session_service.derive_token(session, claims)
    return RequestContext(session=session_service.session_from_token(claims))

def is_privileged(context: RequestContext) -> bool:
    return context.role in PRIVILEGED_ROLES

async def require_privileged(context: RequestContext = Depends(get_request_context)) -> RequestContext:
    if context.session is None or not is_privileged(context):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return context
