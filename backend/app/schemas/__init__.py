from app.schemas.reservation import (
    ReservationCreate, ReservationUpdate, ReservationCancel,
    ReservationResponse, ReservationListResponse, ReservationActionResponse,
)
from app.schemas.report import (
    OccupancyStatsResponse, SpaceOccupancyResponse, OccupancyReportResponse,
    UserActivityResponse, UserActivityReportResponse,
)

__all__ = [
    "ReservationCreate", "ReservationUpdate", "ReservationCancel",
    "ReservationResponse", "ReservationListResponse", "ReservationActionResponse",
    "OccupancyStatsResponse", "SpaceOccupancyResponse", "OccupancyReportResponse",
    "UserActivityResponse", "UserActivityReportResponse",
]
