"""Merge catalog membership into a project's model settings.

Reconciliation only adds information: unseen models get a disabled,
non-default row and rows without a display name get the catalog's name.
Enabled/default flags are never touched, so it is safe to run alongside
readers and to run twice.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modelhub.llm.base import CatalogModel
from modelhub.storage.db import session_scope
from modelhub.storage.repositories import (
    model_settings_backfill_names,
    model_settings_insert_missing,
    model_settings_list,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    created: int = 0
    backfilled: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created or self.backfilled)


async def sync_models_to_store(
    session: AsyncSession,
    project_id: str,
    models: Iterable[CatalogModel],
) -> SyncResult:
    """Create rows for unseen catalog models (disabled) and backfill missing names."""
    existing = {s.model_id: s.model_name for s in await model_settings_list(session, project_id)}
    to_create: list[tuple[str, Optional[str]]] = []
    to_backfill: list[tuple[str, str]] = []
    seen: set[str] = set()
    for model in models:
        if model.id in seen:
            continue
        seen.add(model.id)
        if model.id not in existing:
            to_create.append((model.id, model.name))
        elif not existing[model.id] and model.name:
            to_backfill.append((model.id, model.name))

    result = SyncResult()
    if to_create:
        result.created = await model_settings_insert_missing(session, project_id, to_create)
    if to_backfill:
        result.backfilled = await model_settings_backfill_names(session, project_id, to_backfill)
    if result.changed:
        logger.info(
            "Synced models for project %s: %s created, %s names backfilled",
            project_id,
            result.created,
            result.backfilled,
        )
    return result


class ModelSyncScheduler:
    """Runs reconciliation in detached tasks with their own sessions.

    Failures are logged here and never reach the request that triggered the sync.
    While a sync for a project is still running, new requests for it reuse that task.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    def schedule(self, project_id: str, models: Iterable[CatalogModel]) -> asyncio.Task:
        running = self._tasks.get(project_id)
        if running is not None and not running.done():
            return running
        task = asyncio.create_task(self._run(project_id, list(models)), name=f"model-sync:{project_id}")
        self._tasks[project_id] = task
        task.add_done_callback(lambda t: self._forget(project_id, t))
        return task

    def _forget(self, project_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(project_id) is task:
            del self._tasks[project_id]

    async def _run(self, project_id: str, models: list[CatalogModel]) -> Optional[SyncResult]:
        try:
            async with session_scope(self._session_factory) as session:
                return await sync_models_to_store(session, project_id, models)
        except Exception:
            logger.exception("Model sync failed for project %s", project_id)
            return None

    async def drain(self) -> None:
        """Wait for every scheduled sync to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
