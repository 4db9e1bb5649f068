"""Projects API: minimal registry of monitored projects."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from modelhub.deps import get_db
from modelhub.schemas.project import ProjectCreateIn, ProjectOut
from modelhub.services.model_settings import require_project
from modelhub.storage.models import ProjectModel
from modelhub.storage.repositories import project_create, project_list

router = APIRouter(prefix="/api/projects", tags=["projects"])


def _project_out(p: ProjectModel) -> ProjectOut:
    return ProjectOut(id=p.id, name=p.name, createdAt=p.created_at.isoformat())


@router.get("", response_model=list[ProjectOut])
async def list_projects(session: AsyncSession = Depends(get_db)):
    return [_project_out(p) for p in await project_list(session)]


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(project_id: str, session: AsyncSession = Depends(get_db)):
    return _project_out(await require_project(session, project_id))


@router.post("", response_model=ProjectOut)
async def create_project(body: ProjectCreateIn, session: AsyncSession = Depends(get_db)):
    project = await project_create(session, name=body.name)
    return _project_out(project)
