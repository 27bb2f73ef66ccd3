from typing import Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from country_api import models
from country_api.services.derivation import DerivedCountry, normalize_name

LAST_REFRESH_KEY = "last_refreshed_at"

SORT_COLUMNS = {
    "name_asc": models.Country.name.asc(),
    "name_desc": models.Country.name.desc(),
    "population_asc": models.Country.population.asc(),
    "population_desc": models.Country.population.desc(),
    "gdp_asc": models.Country.estimated_gdp.asc().nulls_last(),
    "gdp_desc": models.Country.estimated_gdp.desc().nulls_last(),
}

_UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


async def get_country(db: AsyncSession, name: str) -> Optional[models.Country]:
    stmt = select(models.Country).where(models.Country.normalized_name == normalize_name(name))
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_countries(db: AsyncSession, region=None, currency=None, sort=None, limit=None, offset=None) -> List[models.Country]:
    stmt = select(models.Country)
    if region is not None:
        trimmed = region.strip()
        if not trimmed:
            return []
        stmt = stmt.where(func.lower(models.Country.region) == trimmed.lower())
    if currency:
        stmt = stmt.where(models.Country.currency_code == currency.strip().upper())

    if sort in SORT_COLUMNS:
        stmt = stmt.order_by(SORT_COLUMNS[sort], models.Country.id)
    else:
        stmt = stmt.order_by(models.Country.id)

    if offset is not None:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def delete_country(db: AsyncSession, name: str) -> bool:
    stmt = delete(models.Country).where(models.Country.normalized_name == normalize_name(name))
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount > 0


async def count_countries(db: AsyncSession) -> int:
    return (await db.execute(select(func.count(models.Country.id)))).scalar() or 0


async def top_countries_by_gdp(db: AsyncSession, limit: int = 5) -> List[models.Country]:
    stmt = (
        select(models.Country)
        .where(models.Country.estimated_gdp.is_not(None))
        .order_by(models.Country.estimated_gdp.desc(), models.Country.id)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all())


# -----------------------------
# Refresh writes
# -----------------------------
# These never commit; the caller owns the transaction so that a whole cycle
# lands or rolls back as one unit.
async def upsert_country(db: AsyncSession, record: DerivedCountry) -> None:
    row = record.as_row()
    insert = _UPSERT_INSERTS.get(db.get_bind().dialect.name)
    if insert is not None:
        stmt = insert(models.Country).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[models.Country.normalized_name],
            set_={k: stmt.excluded[k] for k in row if k != "normalized_name"},
        )
        await db.execute(stmt)
        return

    existing = await get_country(db, record.normalized_name)
    if existing is None:
        db.add(models.Country(**row))
    else:
        for key, value in row.items():
            setattr(existing, key, value)
    await db.flush()


async def upsert_countries(db: AsyncSession, records: Iterable[DerivedCountry]) -> int:
    count = 0
    for record in records:
        await upsert_country(db, record)
        count += 1
    return count


# -----------------------------
# App-level metadata operations
# -----------------------------
async def get_last_refresh(db: AsyncSession) -> Optional[str]:
    meta = await db.get(models.Meta, LAST_REFRESH_KEY)
    return meta.value if meta else None


async def set_last_refresh(db: AsyncSession, value: str) -> None:
    meta = await db.get(models.Meta, LAST_REFRESH_KEY)
    if meta is None:
        db.add(models.Meta(key=LAST_REFRESH_KEY, value=value))
    else:
        meta.value = value
    await db.flush()
