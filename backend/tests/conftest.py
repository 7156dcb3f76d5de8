import os

# Settings are read at import time, so they must exist before the app is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("CLIENT_URL", "http://localhost:3000")
os.environ.setdefault("GITHUB_CLIENT_ID", "test-client-id")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "test-client-secret")

from typing import Iterable, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from auth import create_access_token
from database import get_session
from main import app
from models import ProjectCreate, ProjectReadWithRelations, Role, User
from services import project_service

FIGMA_URL = "https://www.figma.com/file/abcdefghijklmnopqrstuv/Landing-Page"


@pytest_asyncio.fixture
async def sessionmaker():
    engine = create_async_engine(
        "sqlite+aiosqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(sessionmaker):
    async def override_get_session():
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(sessionmaker):
    async def _make(role: Role = Role.USER, email: Optional[str] = "user@example.com", name: str = "Test User") -> User:
        async with sessionmaker() as session:
            user = User(email=email, name=name, role=role, github_id=f"gh-{email}")
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest_asyncio.fixture
async def make_project(sessionmaker):
    async def _make(
        title: str = "Landing page",
        difficulty: str = "Easy",
        technologies: Iterable[str] = ("HTML", "CSS"),
        owner_id: Optional[str] = None,
    ) -> str:
        payload = ProjectCreate(
            title=title,
            image="https://ucarecdn.com/landing.png",
            brief="A simple landing page",
            figma_url=FIGMA_URL,
            difficulty=difficulty,
            description="Build the landing page from the Figma design.",
            technologies=list(technologies),
        )
        async with sessionmaker() as session:
            project = await project_service.create_project(session, payload, owner_id=owner_id)
            return project.id

    return _make


@pytest_asyncio.fixture
async def load_project(sessionmaker):
    async def _load(project_id: str) -> Optional[ProjectReadWithRelations]:
        async with sessionmaker() as session:
            project = await project_service.get_project(session, project_id)
            return ProjectReadWithRelations.model_validate(project) if project else None

    return _load


def auth_headers(user: Optional[User] = None, **claims) -> dict:
    if user is not None:
        claims = {"id": user.id, "email": user.email, **claims}
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest_asyncio.fixture
async def admin_headers(make_user):
    admin = await make_user(role=Role.ADMIN, email="admin@example.com", name="Admin")
    return auth_headers(admin)
