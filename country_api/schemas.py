from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class CountryBase(BaseModel):
    name: str = Field(..., max_length=255)
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int = Field(..., ge=0)
    currency_code: Optional[str] = Field(None, max_length=10)
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None
    last_refreshed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CountryOut(CountryBase):
    id: int


class StatusOut(BaseModel):
    total_countries: int
    last_refreshed_at: Optional[str] = None


class RefreshOut(BaseModel):
    message: str
    total_countries: int
    last_refreshed_at: str


class MessageOut(BaseModel):
    message: str


class ErrorOut(BaseModel):
    error: str
    details: Optional[Any] = None
