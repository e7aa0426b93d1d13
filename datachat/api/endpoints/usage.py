from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from datachat.core import models, schemas
from datachat.core.chat import ledger
from datachat.core.database import get_db
from datachat.core.security import get_current_user

router = APIRouter(prefix="/usage", tags=["Usage"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
user_dep = Annotated[models.User, Depends(get_current_user)]


@router.get("", response_model=schemas.UsageResponse)
async def get_usage(current_user: user_dep, db: db_dep):
    """Quota for the current billing cycle, rolling it over first if it expired."""
    summary = ledger.usage_summary(current_user)
    db.add(current_user)
    await db.commit()
    return summary


@router.get("/history", response_model=List[schemas.UsageLogResponse])
async def get_usage_history(
    current_user: user_dep,
    db: db_dep,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
):
    query = select(models.UsageLog).where(models.UsageLog.owner_id == current_user.id)
    if start is not None:
        query = query.where(models.UsageLog.created_at >= start)
    if end is not None:
        query = query.where(models.UsageLog.created_at <= end)

    query = query.order_by(desc(models.UsageLog.created_at), desc(models.UsageLog.id)).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()
