"""Models API: per-project model list, enable/disable, default, delete, catalog refresh."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from modelhub.deps import get_catalog_cache, get_db, get_model_resolver, require_param
from modelhub.errors import ValidationError
from modelhub.llm.catalog import CatalogCache
from modelhub.schemas.model import (
    CatalogModelOut,
    ModelOut,
    ModelsListOut,
    OperationOut,
    ProviderErrorOut,
    SelectableModelOut,
    UpdateModelIn,
)
from modelhub.services.model_resolver import ModelResolver
from modelhub.services.model_settings import (
    ModelEntry,
    delete_model_setting,
    list_project_models,
    refresh_catalog,
    require_project,
    set_default_model,
    set_model_enabled,
)

router = APIRouter(prefix="/api/models", tags=["models"])


def _model_out(m: ModelEntry) -> ModelOut:
    return ModelOut(id=m.id, name=m.name, enabled=m.enabled, isDefault=m.is_default)


@router.get("", response_model=ModelsListOut)
async def list_models(
    projectId: str | None = None,
    session: AsyncSession = Depends(get_db),
    catalog_cache: CatalogCache = Depends(get_catalog_cache),
):
    """Full settings view: catalog models with their flags, and settings for models that disappeared."""
    project_id = require_param(projectId, "projectId")
    await require_project(session, project_id)
    result = await list_project_models(session, catalog_cache, project_id)
    return ModelsListOut(
        models=[_model_out(m) for m in result.models],
        missingModels=[_model_out(m) for m in result.missing],
        providerErrors=[ProviderErrorOut(provider=e.provider, message=e.message) for e in result.provider_errors],
    )


@router.patch("", response_model=OperationOut)
async def update_model(
    body: UpdateModelIn,
    projectId: str | None = None,
    session: AsyncSession = Depends(get_db),
):
    """Set the default (isDefault=true) or enable/disable a model."""
    project_id = require_param(projectId, "projectId")
    model_id = require_param(body.modelId, "modelId")
    await require_project(session, project_id)
    if body.isDefault is True:
        await set_default_model(session, project_id, model_id, body.modelName)
        return OperationOut(message="Default model updated")
    if body.enabled is not None:
        await set_model_enabled(session, project_id, model_id, body.enabled, body.modelName)
        return OperationOut(message="Model setting updated")
    raise ValidationError("No valid operation specified")


@router.delete("", response_model=OperationOut)
async def delete_model(
    projectId: str | None = None,
    modelId: str | None = None,
    session: AsyncSession = Depends(get_db),
):
    project_id = require_param(projectId, "projectId")
    model_id = require_param(modelId, "modelId")
    await require_project(session, project_id)
    await delete_model_setting(session, project_id, model_id)
    return OperationOut(message="Model setting deleted")


@router.post("", response_model=OperationOut)
async def model_action(
    action: str | None = None,
    catalog_cache: CatalogCache = Depends(get_catalog_cache),
):
    """action=refresh drops the cached catalog so the next read asks the providers again."""
    if action == "refresh":
        await refresh_catalog(catalog_cache)
        return OperationOut(message="Model cache refreshed")
    raise ValidationError("Unknown action")


@router.get("/enabled", response_model=list[SelectableModelOut])
async def list_enabled_models(
    projectId: str | None = None,
    session: AsyncSession = Depends(get_db),
    resolver: ModelResolver = Depends(get_model_resolver),
):
    """Models for the chat model picker, default first."""
    project_id = require_param(projectId, "projectId")
    await require_project(session, project_id)
    models = await resolver.resolve(session, project_id)
    return [SelectableModelOut(id=m.id, name=m.name, isDefault=m.is_default) for m in models]


@router.get("/default", response_model=SelectableModelOut | None)
async def get_default_model(
    projectId: str | None = None,
    session: AsyncSession = Depends(get_db),
    resolver: ModelResolver = Depends(get_model_resolver),
):
    project_id = require_param(projectId, "projectId")
    await require_project(session, project_id)
    model = await resolver.default_model(session, project_id)
    if model is None:
        return None
    return SelectableModelOut(id=model.id, name=model.name, isDefault=model.is_default)


@router.get("/catalog", response_model=list[CatalogModelOut])
async def list_catalog(catalog_cache: CatalogCache = Depends(get_catalog_cache)):
    """Every model the configured providers offer, regardless of project."""
    catalog = await catalog_cache.get()
    return [CatalogModelOut(id=m.id, name=m.name) for m in catalog.models]
