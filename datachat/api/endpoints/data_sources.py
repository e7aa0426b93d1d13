import logging
from datetime import datetime, timezone
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from datachat.core import models, schemas
from datachat.core.chat.adapters import DataSourceAdapter, get_adapter, schema_for
from datachat.core.database import get_db
from datachat.core.security import get_current_user

router = APIRouter(prefix="/data-sources", tags=["Data Sources"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
user_dep = Annotated[models.User, Depends(get_current_user)]
adapter_dep = Annotated[DataSourceAdapter, Depends(get_adapter)]


async def get_owned_source(
    source_id: int, current_user: models.User, db: AsyncSession
) -> models.DataSource:
    source = await db.get(models.DataSource, source_id)
    if source is None or source.owner_id != current_user.id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Data source not found")
    return source


@router.post(
    "", response_model=schemas.DataSourceResponse, status_code=status.HTTP_201_CREATED
)
async def create_data_source(
    payload: schemas.DataSourceCreate, current_user: user_dep, db: db_dep
):
    try:
        source = models.DataSource(
            **payload.model_dump(exclude={"database_type"}),
            database_type=payload.database_type.value,
            owner_id=current_user.id,
        )
        db.add(source)
        await db.commit()
        await db.refresh(source)
        return source
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to add data source: {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to add data source"
        )


@router.get("", response_model=List[schemas.DataSourceResponse])
async def list_data_sources(current_user: user_dep, db: db_dep):
    query = (
        select(models.DataSource)
        .where(models.DataSource.owner_id == current_user.id)
        .order_by(models.DataSource.id)
    )
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{source_id}", response_model=schemas.DataSourceResponse)
async def get_data_source(source_id: int, current_user: user_dep, db: db_dep):
    return await get_owned_source(source_id, current_user, db)


@router.patch("/{source_id}", response_model=schemas.DataSourceResponse)
async def update_data_source(
    source_id: int,
    payload: schemas.DataSourceUpdate,
    current_user: user_dep,
    db: db_dep,
):
    source = await get_owned_source(source_id, current_user, db)

    changes = payload.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(source, key, value)

    # Connection details changed, so the cached schema may describe another database
    if changes.keys() - {"name", "is_active"}:
        source.schema_cache = None

    try:
        db.add(source)
        await db.commit()
        await db.refresh(source)
        return source
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to update data source {source_id}: {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Update failed"
        )


@router.delete("/{source_id}", status_code=status.HTTP_200_OK)
async def delete_data_source(source_id: int, current_user: user_dep, db: db_dep):
    source = await get_owned_source(source_id, current_user, db)
    await db.delete(source)
    await db.commit()
    return {"message": f"Deleted data source {source_id}"}


@router.post("/{source_id}/test", response_model=schemas.ConnectionTestResponse)
async def test_data_source(
    source_id: int, current_user: user_dep, db: db_dep, adapter: adapter_dep
):
    source = await get_owned_source(source_id, current_user, db)
    success = await adapter.test_connection(source)

    if success:
        source.last_tested_at = datetime.now(timezone.utc)
        db.add(source)
        await db.commit()

    return {"data_source_id": source.id, "success": success}


@router.get("/{source_id}/schema", response_model=schemas.SchemaResponse)
async def get_data_source_schema(
    source_id: int,
    current_user: user_dep,
    db: db_dep,
    adapter: adapter_dep,
    refresh: bool = False,
):
    """Return the cached schema, reading it from the database when missing or on ?refresh=true."""
    source = await get_owned_source(source_id, current_user, db)
    schema_text = await schema_for(db, source, adapter, refresh=refresh)
    return {"data_source_id": source.id, "schema_text": schema_text}
