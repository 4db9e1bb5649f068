"""Chat titles API: summarize a first message with the project's default model."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from modelhub.deps import get_db, get_model_resolver, get_registry, require_param
from modelhub.llm.registry import LLMRegistry
from modelhub.schemas.project import TitleIn, TitleOut
from modelhub.services.chat_titles import DEFAULT_TITLE, fallback_title, generate_title
from modelhub.services.model_resolver import ModelResolver
from modelhub.services.model_settings import require_project

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/titles", tags=["titles"])


@router.post("", response_model=TitleOut)
async def create_title(
    body: TitleIn,
    projectId: str | None = None,
    session: AsyncSession = Depends(get_db),
    resolver: ModelResolver = Depends(get_model_resolver),
    registry: LLMRegistry = Depends(get_registry),
):
    project_id = require_param(projectId, "projectId")
    await require_project(session, project_id)
    model = await resolver.default_model(session, project_id)
    if model is None:
        logger.info("Project %s has no usable model, using message as title", project_id)
        return TitleOut(title=fallback_title(body.message) or DEFAULT_TITLE)
    catalog = await resolver.catalog_cache.get()
    resolved = registry.get_provider_for_model(model.id, catalog)
    if not resolved:
        return TitleOut(title=fallback_title(body.message) or DEFAULT_TITLE)
    _provider_id, provider = resolved
    title = await generate_title(provider, model.id, body.message)
    return TitleOut(title=title, modelId=model.id)
