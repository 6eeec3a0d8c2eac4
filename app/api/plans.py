"""Plan catalogue endpoint"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.plan import PlanConfig
from app.schemas.plan import PlanResponse

router = APIRouter()


@router.get("", response_model=List[PlanResponse])
async def list_plans(db: AsyncSession = Depends(get_db)):
    """Active plans in display order"""
    result = await db.execute(
        select(PlanConfig)
        .where(PlanConfig.is_active == True)
        .order_by(PlanConfig.sort_order)
    )
    return result.scalars().all()
