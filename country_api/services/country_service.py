from typing import Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from country_api import crud

VALID_SORTS = {"name_asc", "name_desc", "population_asc", "population_desc", "gdp_asc", "gdp_desc"}


async def list_countries(
    db: AsyncSession,
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    page: Optional[int] = None,
) -> list:
    if sort is not None and sort not in VALID_SORTS:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Validation failed",
                "details": {"sort": "invalid value; must be one of: " + ", ".join(sorted(VALID_SORTS))},
            },
        )
    # page is 1-based and only used when no explicit offset is given
    if offset is None and page is not None and limit is not None:
        offset = (page - 1) * limit
    return await crud.get_countries(db, region, currency, sort, limit, offset)


async def get_country_by_name(db: AsyncSession, name: str):
    country = await crud.get_country(db, name)
    if not country:
        raise HTTPException(status_code=404, detail="Country not found")
    return country


async def delete_country_by_name(db: AsyncSession, name: str) -> dict:
    if not await crud.delete_country(db, name):
        raise HTTPException(status_code=404, detail="Country not found")
    return {"message": "Deleted successfully"}


async def get_status(db: AsyncSession) -> dict:
    total = await crud.count_countries(db)
    last = await crud.get_last_refresh(db)
    return {"total_countries": total, "last_refreshed_at": last}
