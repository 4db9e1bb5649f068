"""Repositories for projects and per-project model settings.

Model setting writes are single ``INSERT ... ON CONFLICT`` statements keyed by
``(project_id, model_id)``, so concurrent writers never duplicate a row. No
business rules live here: callers decide whether a write is allowed.
"""
import functools
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from modelhub.errors import PersistenceError
from modelhub.storage.models import ModelSettingModel, ProjectModel, gen_uuid

_settings_table = ModelSettingModel.__table__


def _persistence(fn):
    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as e:
            raise PersistenceError(f"{fn.__name__} failed: {type(e).__name__}") from e
    return wrapper


def _insert_for(session: AsyncSession):
    """Dialect-specific insert (both support ON CONFLICT)."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def _name_is_empty():
    return or_(ModelSettingModel.model_name.is_(None), ModelSettingModel.model_name == "")


def _fill_name(excluded_name):
    # Keep the stored name unless it is NULL or ''
    current = _settings_table.c.model_name
    return func.coalesce(func.nullif(current, ""), excluded_name)


# ---------- Projects ----------
@_persistence
async def project_create(session: AsyncSession, name: str, id: Optional[str] = None) -> ProjectModel:
    p = ProjectModel(id=id or gen_uuid(), name=name)
    session.add(p)
    await session.flush()
    return p


@_persistence
async def project_get(session: AsyncSession, id: str) -> Optional[ProjectModel]:
    r = await session.execute(select(ProjectModel).where(ProjectModel.id == id))
    return r.scalar_one_or_none()


@_persistence
async def project_lock(session: AsyncSession, project_id: str) -> None:
    """Row lock on the project for the rest of the transaction (no-op on SQLite, which serializes writers)."""
    await session.execute(
        select(ProjectModel.id).where(ProjectModel.id == project_id).with_for_update()
    )


@_persistence
async def project_list(session: AsyncSession) -> list[ProjectModel]:
    r = await session.execute(select(ProjectModel).order_by(ProjectModel.created_at))
    return list(r.scalars().all())


# ---------- Model settings: reads ----------
@_persistence
async def model_settings_list(session: AsyncSession, project_id: str) -> list[ModelSettingModel]:
    r = await session.execute(
        select(ModelSettingModel).where(ModelSettingModel.project_id == project_id)
    )
    return list(r.scalars().all())


@_persistence
async def model_setting_get(
    session: AsyncSession,
    project_id: str,
    model_id: str,
) -> Optional[ModelSettingModel]:
    r = await session.execute(
        select(ModelSettingModel).where(
            ModelSettingModel.project_id == project_id,
            ModelSettingModel.model_id == model_id,
        )
    )
    return r.scalar_one_or_none()


@_persistence
async def model_setting_get_default(session: AsyncSession, project_id: str) -> Optional[ModelSettingModel]:
    """The default row; ``enabled`` is checked too even though a default is always enabled."""
    r = await session.execute(
        select(ModelSettingModel).where(
            ModelSettingModel.project_id == project_id,
            ModelSettingModel.is_default.is_(True),
            ModelSettingModel.enabled.is_(True),
        )
    )
    return r.scalars().first()


@_persistence
async def model_settings_enabled(session: AsyncSession, project_id: str) -> list[ModelSettingModel]:
    r = await session.execute(
        select(ModelSettingModel).where(
            ModelSettingModel.project_id == project_id,
            ModelSettingModel.enabled.is_(True),
        )
    )
    return list(r.scalars().all())


async def _ids_by_enabled(session: AsyncSession, project_id: str, enabled: bool) -> list[str]:
    r = await session.execute(
        select(ModelSettingModel.model_id).where(
            ModelSettingModel.project_id == project_id,
            ModelSettingModel.enabled.is_(enabled),
        )
    )
    return list(r.scalars().all())


@_persistence
async def model_settings_enabled_ids(session: AsyncSession, project_id: str) -> list[str]:
    return await _ids_by_enabled(session, project_id, True)


@_persistence
async def model_settings_disabled_ids(session: AsyncSession, project_id: str) -> list[str]:
    return await _ids_by_enabled(session, project_id, False)


# ---------- Model settings: writes ----------
@_persistence
async def model_setting_set_enabled(
    session: AsyncSession,
    project_id: str,
    model_id: str,
    enabled: bool,
    model_name: Optional[str] = None,
    spare_default: bool = False,
) -> Optional[ModelSettingModel]:
    """Upsert the enabled flag. New rows are never default.

    With ``spare_default`` an existing default row is left as is and ``None``
    is returned; the check and the write are the same statement.
    """
    now = datetime.utcnow()
    stmt = _insert_for(session)(ModelSettingModel).values(
        id=gen_uuid(),
        project_id=project_id,
        model_id=model_id,
        model_name=model_name or None,
        enabled=enabled,
        is_default=False,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["project_id", "model_id"],
        set_={
            "enabled": stmt.excluded.enabled,
            "model_name": _fill_name(stmt.excluded.model_name),
            "updated_at": now,
        },
        where=_settings_table.c.is_default.is_(False) if spare_default else None,
    ).returning(ModelSettingModel)
    r = await session.execute(stmt, execution_options={"populate_existing": True})
    return r.scalar_one_or_none()


@_persistence
async def model_setting_set_default(
    session: AsyncSession,
    project_id: str,
    model_id: str,
    model_name: Optional[str] = None,
) -> ModelSettingModel:
    """Make ``model_id`` the only default of the project (and enable it).

    Both statements run in the caller's transaction. The project row is locked
    first so concurrent swaps for the same project queue up instead of each
    clearing a snapshot that misses the other's new default.
    """
    now = datetime.utcnow()
    await project_lock(session, project_id)
    await session.execute(
        update(ModelSettingModel)
        .where(
            ModelSettingModel.project_id == project_id,
            ModelSettingModel.is_default.is_(True),
        )
        .values(is_default=False, updated_at=now)
    )
    stmt = _insert_for(session)(ModelSettingModel).values(
        id=gen_uuid(),
        project_id=project_id,
        model_id=model_id,
        model_name=model_name or None,
        enabled=True,
        is_default=True,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["project_id", "model_id"],
        set_={
            "enabled": True,
            "is_default": True,
            "model_name": _fill_name(stmt.excluded.model_name),
            "updated_at": now,
        },
    ).returning(ModelSettingModel)
    r = await session.execute(stmt, execution_options={"populate_existing": True})
    return r.scalar_one()


@_persistence
async def model_setting_delete(
    session: AsyncSession,
    project_id: str,
    model_id: str,
    spare_default: bool = False,
) -> bool:
    stmt = delete(ModelSettingModel).where(
        ModelSettingModel.project_id == project_id,
        ModelSettingModel.model_id == model_id,
    )
    if spare_default:
        stmt = stmt.where(ModelSettingModel.is_default.is_(False))
    r = await session.execute(stmt)
    return r.rowcount > 0


@_persistence
async def model_settings_insert_missing(
    session: AsyncSession,
    project_id: str,
    models: Iterable[tuple[str, Optional[str]]],
) -> int:
    """Insert disabled, non-default rows for ``(model_id, name)`` pairs; existing rows are left alone."""
    now = datetime.utcnow()
    rows = [
        {
            "id": gen_uuid(),
            "project_id": project_id,
            "model_id": model_id,
            "model_name": name or None,
            "enabled": False,
            "is_default": False,
            "created_at": now,
            "updated_at": now,
        }
        for model_id, name in models
    ]
    if not rows:
        return 0
    stmt = _insert_for(session)(_settings_table).values(rows).on_conflict_do_nothing(
        index_elements=["project_id", "model_id"]
    )
    r = await session.execute(stmt)
    return max(r.rowcount, 0)


@_persistence
async def model_settings_backfill_names(
    session: AsyncSession,
    project_id: str,
    models: Iterable[tuple[str, str]],
) -> int:
    """Set names on rows whose name is still empty. Returns rows changed."""
    now = datetime.utcnow()
    changed = 0
    for model_id, name in models:
        if not name:
            continue
        r = await session.execute(
            update(ModelSettingModel)
            .where(
                ModelSettingModel.project_id == project_id,
                ModelSettingModel.model_id == model_id,
                _name_is_empty(),
            )
            .values(model_name=name, updated_at=now)
        )
        changed += r.rowcount
    return changed
