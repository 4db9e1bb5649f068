"""Settings operations behind the /api/models endpoints.

Business rules are checked here, before the store is written: the default
model can be replaced but never disabled or deleted.
"""
import logging
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from modelhub.errors import DefaultModelProtected, NotFoundError
from modelhub.llm.catalog import CatalogCache, ProviderError
from modelhub.services.model_resolver import sort_models
from modelhub.storage.models import ModelSettingModel, ProjectModel
from modelhub.storage.repositories import (
    model_setting_delete,
    model_setting_get,
    model_setting_get_default,
    model_setting_set_default,
    model_setting_set_enabled,
    model_settings_list,
    project_get,
    project_lock,
)

logger = logging.getLogger(__name__)

DISABLE_DEFAULT_MESSAGE = "Cannot disable the default model. Set another model as default first."
DELETE_DEFAULT_MESSAGE = "Cannot delete settings for the default model. Set another model as default first."


class ModelEntry(BaseModel):
    id: str
    name: str
    enabled: bool
    is_default: bool


class ProjectModels(BaseModel):
    models: list[ModelEntry] = Field(default_factory=list)
    missing: list[ModelEntry] = Field(default_factory=list)
    provider_errors: list[ProviderError] = Field(default_factory=list)


async def require_project(session: AsyncSession, project_id: str) -> ProjectModel:
    project = await project_get(session, project_id)
    if not project:
        raise NotFoundError("Project not found")
    return project


async def list_project_models(
    session: AsyncSession,
    catalog_cache: CatalogCache,
    project_id: str,
) -> ProjectModels:
    """Every catalog model with the project's flags, plus settings for models the catalog lost.

    A catalog model without a settings row counts as enabled.
    """
    catalog = await catalog_cache.get()
    settings = {s.model_id: s for s in await model_settings_list(session, project_id)}
    default = await model_setting_get_default(session, project_id)
    default_id = default.model_id if default else None

    models = []
    for m in catalog.models:
        setting: Optional[ModelSettingModel] = settings.get(m.id)
        models.append(
            ModelEntry(
                id=m.id,
                name=m.name,
                enabled=setting.enabled if setting else True,
                is_default=m.id == default_id,
            )
        )
    available = catalog.model_ids()
    missing = [
        ModelEntry(id=s.model_id, name=s.model_id, enabled=s.enabled, is_default=s.model_id == default_id)
        for s in settings.values()
        if s.model_id not in available
    ]
    return ProjectModels(
        models=sort_models(models),
        missing=sort_models(missing),
        provider_errors=catalog.provider_errors,
    )


async def set_model_enabled(
    session: AsyncSession,
    project_id: str,
    model_id: str,
    enabled: bool,
    model_name: Optional[str] = None,
) -> ModelSettingModel:
    """Enable or disable a model; the default can only be enabled.

    The project lock queues this behind a concurrent default swap, and the
    disable write itself skips a row that is default by the time it runs.
    """
    await project_lock(session, project_id)
    if not enabled:
        default = await model_setting_get_default(session, project_id)
        if default and default.model_id == model_id:
            raise DefaultModelProtected(DISABLE_DEFAULT_MESSAGE, model_id)
    setting = await model_setting_set_enabled(
        session, project_id, model_id, enabled, model_name, spare_default=not enabled
    )
    if setting is None:
        raise DefaultModelProtected(DISABLE_DEFAULT_MESSAGE, model_id)
    logger.info("Project %s: model %s %s", project_id, model_id, "enabled" if enabled else "disabled")
    return setting


async def set_default_model(
    session: AsyncSession,
    project_id: str,
    model_id: str,
    model_name: Optional[str] = None,
) -> ModelSettingModel:
    setting = await model_setting_set_default(session, project_id, model_id, model_name)
    logger.info("Project %s: default model set to %s", project_id, model_id)
    return setting


async def delete_model_setting(session: AsyncSession, project_id: str, model_id: str) -> bool:
    await project_lock(session, project_id)
    default = await model_setting_get_default(session, project_id)
    if default and default.model_id == model_id:
        raise DefaultModelProtected(DELETE_DEFAULT_MESSAGE, model_id)
    deleted = await model_setting_delete(session, project_id, model_id, spare_default=True)
    if deleted:
        logger.info("Project %s: settings for model %s deleted", project_id, model_id)
        return True
    # Nothing deleted: either no row, or it became the default after the check above
    row = await model_setting_get(session, project_id, model_id)
    if row is not None and row.is_default:
        raise DefaultModelProtected(DELETE_DEFAULT_MESSAGE, model_id)
    return False


async def refresh_catalog(catalog_cache: CatalogCache) -> None:
    """Drop the cached catalog; the next read fetches from the providers."""
    await catalog_cache.invalidate()
