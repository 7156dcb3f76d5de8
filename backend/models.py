# backend/models.py
import enum
import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import field_validator
from sqlmodel import Field, Relationship, SQLModel

FIGMA_URL_PATTERN = re.compile(r"https://([\w.-]+\.)?figma.com/(file|proto)/([0-9a-zA-Z]{22,128})(?:/.*)?$")

def new_id() -> str:
    return uuid.uuid4().hex

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"

# --- Tables ---
class ProjectTechnologyLink(SQLModel, table=True):
    __tablename__ = "project_technology"
    project_id: Optional[str] = Field(default=None, foreign_key="project.id", primary_key=True)
    technology_id: Optional[str] = Field(default=None, foreign_key="technology.id", primary_key=True)

class DifficultyBase(SQLModel):
    name: str = Field(unique=True, index=True)

class Difficulty(DifficultyBase, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    projects: List["Project"] = Relationship(back_populates="difficulty")

class TechnologyBase(SQLModel):
    name: str = Field(unique=True, index=True)

class Technology(TechnologyBase, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    projects: List["Project"] = Relationship(back_populates="technologies", link_model=ProjectTechnologyLink)

class ProjectBase(SQLModel):
    title: str
    image: str
    brief: str
    figma_url: str
    description: str

class Project(ProjectBase, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    difficulty_id: Optional[str] = Field(default=None, foreign_key="difficulty.id")
    user_id: Optional[str] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    difficulty: Optional[Difficulty] = Relationship(back_populates="projects", sa_relationship_kwargs={"lazy": "selectin"})
    technologies: List[Technology] = Relationship(
        back_populates="projects", link_model=ProjectTechnologyLink, sa_relationship_kwargs={"lazy": "selectin"}
    )
    user: Optional["User"] = Relationship(back_populates="projects")

class SocialMediaBase(SQLModel):
    name: str
    url: str

class SocialMedia(SocialMediaBase, table=True):
    __tablename__ = "social_media"
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    user: Optional["User"] = Relationship(back_populates="social_media")

class User(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    github_id: Optional[str] = Field(default=None, unique=True, index=True)
    name: Optional[str] = Field(default=None)
    email: Optional[str] = Field(default=None, unique=True, index=True)
    image: Optional[str] = Field(default=None, max_length=512)
    role: Role = Field(default=Role.USER)
    projects: List[Project] = Relationship(back_populates="user", sa_relationship_kwargs={"lazy": "selectin"})
    social_media: List[SocialMedia] = Relationship(back_populates="user", sa_relationship_kwargs={"lazy": "selectin"})

# --- Read models ---
class DifficultyRead(DifficultyBase):
    id: str

class TechnologyRead(TechnologyBase):
    id: str

class SocialMediaRead(SocialMediaBase):
    id: str
    user_id: str

class ProjectRead(ProjectBase):
    id: str
    difficulty_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class ProjectReadWithRelations(ProjectRead):
    difficulty: Optional[DifficultyRead] = None
    technologies: List[TechnologyRead] = []

# --- Write models ---
class ProjectUpdate(SQLModel):
    """Every field may be omitted; only the ones sent are applied. A sent field may not be null."""
    title: Optional[str] = None
    image: Optional[str] = None
    brief: Optional[str] = None
    figma_url: Optional[str] = None
    difficulty: Optional[str] = None
    description: Optional[str] = None
    technologies: Optional[List[str]] = None

    @field_validator("*", mode="before")
    @classmethod
    def _reject_null(cls, value):
        # Defaults are not validated, so this only sees fields present in the body.
        if value is None:
            raise ValueError("Expected a value, received null")
        return value

class ProjectCreate(SQLModel):
    title: str = Field(min_length=6)
    image: str
    brief: str = Field(min_length=10)
    figma_url: str
    difficulty: str = Field(min_length=1)
    description: str = Field(min_length=10)
    technologies: List[str] = []

    @field_validator("figma_url")
    @classmethod
    def _check_figma_url(cls, value: str) -> str:
        if not FIGMA_URL_PATTERN.search(value):
            raise ValueError("figma_url must be a valid Figma file or prototype link")
        return value

    @field_validator("technologies", mode="before")
    @classmethod
    def _split_technologies(cls, value):
        # The dashboard form sends technologies as one space-separated string.
        if isinstance(value, str):
            return value.split()
        return value

# --- Session ---
class SessionUser(SQLModel):
    id: Optional[str] = None
    role: Optional[Role] = None
    name: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    projects: List[ProjectReadWithRelations] = []
    social_media: List[SocialMediaRead] = []

class Session(SQLModel):
    user: SessionUser
