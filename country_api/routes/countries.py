from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from country_api import schemas
from country_api.config import settings
from country_api.database import get_db, get_session_factory
from country_api.limiter import rate_limit
from country_api.services import country_service
from country_api.services.refresh import RefreshService


def get_refresh_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> RefreshService:
    return RefreshService(session_factory)


router = APIRouter()


@router.post(
    "/refresh",
    response_model=schemas.RefreshOut,
    summary="Refresh country, currency, and exchange data",
    description=(
        "Fetches the latest data from both external providers and upserts every country in one "
        "transaction, then regenerates the summary image. Returns 409 while a refresh is running "
        "and 503 naming the provider that failed."
    ),
    responses={409: {"model": schemas.ErrorOut}, 503: {"model": schemas.ErrorOut}, 500: {"model": schemas.ErrorOut}},
)
async def refresh_countries(
    service: RefreshService = Depends(get_refresh_service),
    _: None = rate_limit(settings.RATE_LIMIT_REFRESH_TIMES, settings.RATE_LIMIT_REFRESH_SECONDS),
):
    result = await service.run()
    return result.to_dict()


@router.get(
    "",
    response_model=List[schemas.CountryOut],
    summary="List countries",
    description=(
        "Returns countries with optional filtering, sorting, and pagination.\n\n"
        "Filters:\n"
        "- region: case-insensitive exact region match (e.g., 'Europe')\n"
        "- currency: currency code (e.g., 'USD', 'NGN'), case-insensitive\n\n"
        "Sorting options (sort): name_asc|name_desc|population_asc|population_desc|gdp_asc|gdp_desc\n\n"
        "Pagination: limit with either offset or a 1-based page."
    ),
    response_description="List of countries",
)
async def get_all(
    region: Optional[str] = Query(default=None, description="Filter by region (case-insensitive exact match)", examples=["Europe"]),
    currency: Optional[str] = Query(
        default=None,
        description="Filter by currency code (case-insensitive)",
        examples=["NGN"],
        min_length=1,
        max_length=10,
    ),
    sort: Optional[str] = Query(
        default=None,
        description="Sort order: one of name_asc, name_desc, population_asc, population_desc, gdp_asc, gdp_desc",
        examples=["gdp_desc"],
    ),
    limit: Optional[int] = Query(default=None, ge=1, le=1000, description="Maximum number of records to return (1-1000)"),
    offset: Optional[int] = Query(default=None, ge=0, description="Number of records to skip"),
    page: Optional[int] = Query(default=None, ge=1, description="1-based page number; used with limit when offset is absent"),
    db: AsyncSession = Depends(get_db),
    _: None = rate_limit(settings.RATE_LIMIT_DEFAULT_TIMES, settings.RATE_LIMIT_DEFAULT_SECONDS),
):
    return await country_service.list_countries(db, region, currency, sort, limit, offset, page)


@router.get(
    "/image",
    summary="Get generated summary image",
    description="Returns the PNG summary (total count, last refresh time, top 5 by estimated GDP).",
    responses={404: {"model": schemas.ErrorOut}},
)
async def get_image(
    _: None = rate_limit(settings.RATE_LIMIT_IMAGE_TIMES, settings.RATE_LIMIT_IMAGE_SECONDS),
):
    img_path = settings.CACHE_IMAGE_PATH
    if not img_path.exists():
        raise HTTPException(status_code=404, detail="Summary image not found")
    return FileResponse(str(img_path), media_type="image/png")


@router.get(
    "/{name}",
    response_model=schemas.CountryOut,
    summary="Get country by name",
    description="Case- and whitespace-insensitive country name match.",
    responses={404: {"model": schemas.ErrorOut}},
)
async def get_one(
    name: str = Path(..., description="Country name", examples=["Nigeria"]),
    db: AsyncSession = Depends(get_db),
    _: None = rate_limit(settings.RATE_LIMIT_DEFAULT_TIMES, settings.RATE_LIMIT_DEFAULT_SECONDS),
):
    return await country_service.get_country_by_name(db, name)


@router.delete(
    "/{name}",
    response_model=schemas.MessageOut,
    summary="Delete a country by name",
    description="Deletes a country if it exists. The next refresh recreates it.",
    responses={404: {"model": schemas.ErrorOut}},
)
async def delete_country(
    name: str = Path(..., description="Country name", examples=["Nigeria"]),
    db: AsyncSession = Depends(get_db),
    _: None = rate_limit(settings.RATE_LIMIT_DEFAULT_TIMES, settings.RATE_LIMIT_DEFAULT_SECONDS),
):
    return await country_service.delete_country_by_name(db, name)
