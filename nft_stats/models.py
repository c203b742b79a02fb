"""Pydantic models for API responses."""

from pydantic import BaseModel
from typing import List, Optional


class AccountTotals(BaseModel):
    """Holder count and summed asset count from the accounts listing."""
    holders: int = 0
    total_by_sum: Optional[int] = None


class StatsResponse(BaseModel):
    """Response model for /stats when aggregation succeeds."""
    ok: bool = True
    holders: int
    total_assets: Optional[int] = None
    floor_wax: Optional[float] = None


class ErrorResponse(BaseModel):
    """Response model for /stats when no reliable stats could be produced."""
    ok: bool = False
    error: str


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""
    status: str
    collection_name: str
    provider_hosts: List[str]
