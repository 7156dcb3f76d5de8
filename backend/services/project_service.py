# backend/services/project_service.py
import logging
from typing import Iterable, List, Optional, Type, TypeVar, TypedDict, Union

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from models import (
    Difficulty, Project, ProjectCreate, ProjectReadWithRelations, ProjectUpdate, Technology, utcnow,
)

logger = logging.getLogger(__name__)

NamedEntity = TypeVar("NamedEntity", Difficulty, Technology)

SCALAR_FIELDS = ("title", "image", "brief", "figma_url", "description")

class ProjectNotFoundError(LookupError):
    pass

class ProjectChanges(TypedDict, total=False):
    """Scalar project columns to overwrite. A key is present only when the request sent a value."""
    title: str
    image: str
    brief: str
    figma_url: str
    description: str

async def get_project(session: AsyncSession, project_id: str) -> Optional[Project]:
    return await session.get(Project, project_id)

async def list_projects(session: AsyncSession) -> List[Project]:
    result = await session.execute(select(Project).order_by(Project.created_at.desc()))
    return list(result.scalars().all())

async def find_or_create_by_name(session: AsyncSession, model: Type[NamedEntity], name: str) -> NamedEntity:
    """Return the row of `model` whose unique name is `name`, creating it if missing.

    Calling this twice with the same name yields the same row. Pending rows are
    visible to the lookup through autoflush, so repeats inside one unit of work
    do not create duplicates either.
    """
    result = await session.execute(select(model).where(model.name == name))
    entity = result.scalar_one_or_none()
    if entity is None:
        entity = model(name=name)
        session.add(entity)
        await session.flush()
        logger.info("Created %s %r", model.__name__, name)
    return entity

def build_changeset(update: Union[ProjectUpdate, ProjectCreate]) -> ProjectChanges:
    sent = update.model_dump(exclude_unset=True)
    return ProjectChanges(**{field: sent[field] for field in SCALAR_FIELDS if field in sent})

def apply_changeset(project: Project, changes: ProjectChanges) -> Project:
    for field, value in changes.items():
        setattr(project, field, value)
    return project

async def link_difficulty(session: AsyncSession, project: Project, name: str) -> None:
    project.difficulty = await find_or_create_by_name(session, Difficulty, name)

async def resolve_technologies(session: AsyncSession, names: Iterable[str]) -> List[Technology]:
    return [await find_or_create_by_name(session, Technology, name) for name in dict.fromkeys(names)]

async def link_technologies(
    session: AsyncSession, project: Project, names: Iterable[str], replace: bool = False
) -> None:
    """Connect-or-create each named technology on `project`.

    With replace=False links are only added; technologies already linked but
    missing from `names` stay linked. With replace=True the project ends up
    linked to exactly `names`.
    """
    technologies = await resolve_technologies(session, names)
    if replace:
        if inspect(project).persistent and "technologies" in inspect(project).unloaded:
            # Replacing an unloaded collection would lazy-load it, which async sessions cannot do.
            await session.refresh(project, ["technologies"])
        project.technologies = technologies
        return
    linked = {technology.id for technology in project.technologies}
    for technology in technologies:
        if technology.id not in linked:
            project.technologies.append(technology)
            linked.add(technology.id)

async def _require_project(session: AsyncSession, project_id: str, action: str) -> Project:
    project = await get_project(session, project_id)
    if project is None:
        raise ProjectNotFoundError(f"Project to {action} not found: {project_id}")
    return project

async def update_project(session: AsyncSession, project_id: str, update: ProjectUpdate) -> Project:
    try:
        project = await _require_project(session, project_id, "update")
        apply_changeset(project, build_changeset(update))
        if update.difficulty:
            await link_difficulty(session, project, update.difficulty)
        if update.technologies:
            await link_technologies(session, project, update.technologies, replace=False)
        project.updated_at = utcnow()
        session.add(project)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Updated project %s", project_id)
    return project

async def create_project(session: AsyncSession, payload: ProjectCreate, owner_id: Optional[str]) -> Project:
    try:
        # Relations are resolved before the project exists so its collections never need loading.
        difficulty = await find_or_create_by_name(session, Difficulty, payload.difficulty)
        technologies = await resolve_technologies(session, payload.technologies)
        project = Project(
            user_id=owner_id, difficulty=difficulty, technologies=technologies, **build_changeset(payload)
        )
        session.add(project)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Created project %s", project.id)
    return project

async def delete_project(session: AsyncSession, project_id: str) -> ProjectReadWithRelations:
    try:
        project = await _require_project(session, project_id, "delete")
        snapshot = ProjectReadWithRelations.model_validate(project)
        await session.delete(project)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Deleted project %s", project_id)
    return snapshot
