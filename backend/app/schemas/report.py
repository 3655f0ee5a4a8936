"""
Pydantic schemas for occupancy and activity reports.
"""

from datetime import datetime
from pydantic import BaseModel


class OccupancyStatsResponse(BaseModel):
    total_reservations: int
    total_hours: float
    occupancy_rate: float

    model_config = {"from_attributes": True}


class SpaceOccupancyResponse(BaseModel):
    space_id: int
    space_name: str
    stats: OccupancyStatsResponse

    model_config = {"from_attributes": True}


class OccupancyReportResponse(BaseModel):
    scope: str
    scope_id: int
    period_start: datetime
    period_end: datetime
    stats: OccupancyStatsResponse
    spaces: list[SpaceOccupancyResponse] = []
    cached: bool = False

    model_config = {"from_attributes": True}


class UserActivityResponse(BaseModel):
    user_id: int
    total_reservations: int
    confirmed_reservations: int
    checked_in_reservations: int
    completed_reservations: int
    cancelled_reservations: int
    total_hours: float

    model_config = {"from_attributes": True}


class UserActivityReportResponse(BaseModel):
    period_start: datetime
    period_end: datetime
    users: list[UserActivityResponse]
    cached: bool = False
