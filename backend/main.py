# backend/main.py
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from starlette.middleware.cors import CORSMiddleware

from config import CLIENT_URL, JWT_SECRET, LOG_LEVEL
from database import create_db_and_tables, get_session
from logging_config import configure_logging
from models import ProjectCreate, ProjectReadWithRelations, ProjectUpdate, Session
from auth import (
    RequestContext, create_access_token, fetch_github_profile, find_or_create_user, get_request_context, oauth,
    require_privileged,
)
from services import project_service, session_service

configure_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up and creating database tables...")
    await create_db_and_tables()
    logger.info("Startup complete.")
    yield

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware, allow_origins=[CLIENT_URL], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)
app.add_middleware(SessionMiddleware, secret_key=JWT_SECRET)

def error_response(status_code: int, error) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})

def validation_error_response(exc: ValidationError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, exc.errors(include_url=False, include_context=False, include_input=False))

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

# --- Auth Routes ---
@app.get("/auth/github")
async def login(request: Request):
    assert oauth.github is not None
    redirect_uri = request.url_for('auth_callback')
    return await oauth.github.authorize_redirect(request, redirect_uri)

@app.get("/auth/github/callback", name="auth_callback")
async def auth_callback(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        assert oauth.github is not None
        token = await oauth.github.authorize_access_token(request)
        profile = await fetch_github_profile(token)
        db_user = await find_or_create_user(session, profile)
        claims = await session_service.derive_token(
            session,
            {"name": profile["name"], "email": profile["email"], "picture": profile["image"]},
            user={"id": db_user.id},
        )
        access_token = create_access_token(claims)
        return RedirectResponse(url=f"{CLIENT_URL}/dashboard?token={access_token}")
    except Exception:
        logger.exception("Error during GitHub auth callback")
        return RedirectResponse(url=f"{CLIENT_URL}/login/error")

@app.get("/api/auth/session", response_model=Optional[Session])
async def read_session(context: RequestContext = Depends(get_request_context)):
    return context.session

# --- Project Routes ---
@app.get("/api/project", response_model=List[ProjectReadWithRelations])
async def list_projects(session: AsyncSession = Depends(get_session)):
    try:
        projects = await project_service.list_projects(session)
        return [ProjectReadWithRelations.model_validate(p) for p in projects]
    except Exception as e:
        logger.exception("Failed to list projects")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

@app.post("/api/project", status_code=status.HTTP_201_CREATED, response_model=ProjectReadWithRelations)
async def create_project(
    request: Request,
    context: RequestContext = Depends(require_privileged),
    session: AsyncSession = Depends(get_session)
):
    try:
        payload = ProjectCreate.model_validate_json(await request.body())
        project = await project_service.create_project(session, payload, owner_id=context.user_id)
        return ProjectReadWithRelations.model_validate(project)
    except ValidationError as e:
        return validation_error_response(e)
    except Exception as e:
        logger.exception("Failed to create project")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

@app.get("/api/project/{project_id}", response_model=Optional[ProjectReadWithRelations])
async def read_project(project_id: str, session: AsyncSession = Depends(get_session)):
    try:
        project = await project_service.get_project(session, project_id)
        return ProjectReadWithRelations.model_validate(project) if project else None
    except Exception as e:
        logger.exception("Failed to read project %s", project_id)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

@app.put("/api/project/{project_id}", response_model=ProjectReadWithRelations, dependencies=[Depends(require_privileged)])
async def update_project(project_id: str, request: Request, session: AsyncSession = Depends(get_session)):
    # The body is read only after require_privileged has let the caller through.
    try:
        update = ProjectUpdate.model_validate_json(await request.body())
        project = await project_service.update_project(session, project_id, update)
        return ProjectReadWithRelations.model_validate(project)
    except ValidationError as e:
        return validation_error_response(e)
    except Exception as e:
        logger.exception("Failed to update project %s", project_id)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

@app.delete("/api/project/{project_id}", response_model=ProjectReadWithRelations, dependencies=[Depends(require_privileged)])
async def delete_project(project_id: str, session: AsyncSession = Depends(get_session)):
    try:
        return await project_service.delete_project(session, project_id)
    except Exception as e:
        logger.exception("Failed to delete project %s", project_id)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

@app.get("/")
async def read_root():
    return {"message": "Challenges backend is running!"}
