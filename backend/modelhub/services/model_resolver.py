"""Read path for model pickers and chat callers.

The settings table doubles as a cache of the catalog: when it can answer
(enabled rows exist and all of them have a display name) no provider is
contacted. Otherwise the catalog is read through the catalog cache and a
detached sync writes what was learned back into the table.
"""
import logging
import unicodedata
from typing import Optional, Sequence, TypeVar

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from modelhub.llm.catalog import CatalogCache
from modelhub.services.model_sync import ModelSyncScheduler
from modelhub.storage.repositories import model_setting_get_default, model_settings_enabled

logger = logging.getLogger(__name__)


class ResolvedModel(BaseModel):
    id: str
    name: str
    is_default: bool = False


T = TypeVar("T", bound=BaseModel)


def collation_key(name: str) -> tuple[str, str]:
    """Accent- and case-insensitive first ('Élan' sorts with 'Elan', before 'Zephyr'),
    then the casefolded name so accented and plain spellings order consistently."""
    folded = name.casefold()
    base = "".join(c for c in unicodedata.normalize("NFKD", folded) if not unicodedata.combining(c))
    return base, folded


def sort_models(models: Sequence[T]) -> list[T]:
    """Default first, then enabled (when the item has the flag), then name.

    ``sorted`` is stable, so fully equal keys keep their input order.
    """
    def key(m):
        return (
            not m.is_default,
            not getattr(m, "enabled", True),
            collation_key(m.name),
        )

    return sorted(models, key=key)


class ModelResolver:
    def __init__(
        self,
        catalog_cache: CatalogCache,
        sync_scheduler: ModelSyncScheduler,
        default_model_id: Optional[str] = None,
    ):
        self.catalog_cache = catalog_cache
        self._sync = sync_scheduler
        self._default_model_id = default_model_id

    async def resolve(self, session: AsyncSession, project_id: str) -> list[ResolvedModel]:
        """Selectable models for a project, default first."""
        stored = await self._from_store(session, project_id)
        if stored is not None:
            return stored
        return await self._from_catalog(session, project_id)

    async def _from_store(self, session: AsyncSession, project_id: str) -> Optional[list[ResolvedModel]]:
        rows = await model_settings_enabled(session, project_id)
        if not rows:
            return None
        # A nameless row means the table has not caught up with the catalog yet
        if any(not r.model_name for r in rows):
            logger.debug("Project %s has enabled models without names, using catalog", project_id)
            return None
        return sort_models(
            [ResolvedModel(id=r.model_id, name=r.model_name, is_default=r.is_default) for r in rows]
        )

    async def _from_catalog(self, session: AsyncSession, project_id: str) -> list[ResolvedModel]:
        catalog = await self.catalog_cache.get()
        default = await model_setting_get_default(session, project_id)
        default_id = default.model_id if default else None
        if catalog.models:
            self._sync.schedule(project_id, catalog.models)
        # Disabled rows are not filtered out: sync creates every unseen model disabled, so
        # filtering would empty the list for projects that never enabled anything. The cost is
        # that a model the operator disabled stays selectable until the store can answer again.
        return sort_models(
            [ResolvedModel(id=m.id, name=m.name, is_default=m.id == default_id) for m in catalog.models]
        )

    async def default_model(self, session: AsyncSession, project_id: str) -> Optional[ResolvedModel]:
        """The model to use when the caller did not pick one.

        Project default, else the configured DEFAULT_MODEL_ID when the catalog
        offers it, else the first selectable model.
        """
        row = await model_setting_get_default(session, project_id)
        if row:
            name = row.model_name
            if not name:
                catalog = await self.catalog_cache.get()
                known = catalog.get(row.model_id)
                name = known.name if known else row.model_id
            return ResolvedModel(id=row.model_id, name=name, is_default=True)
        if self._default_model_id:
            catalog = await self.catalog_cache.get()
            known = catalog.get(self._default_model_id)
            if known:
                return ResolvedModel(id=known.id, name=known.name)
        models = await self.resolve(session, project_id)
        return models[0] if models else None
