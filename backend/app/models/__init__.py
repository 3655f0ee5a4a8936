from app.models.building import Building
from app.models.floor import Floor
from app.models.space import Space
from app.models.user import User
from app.models.reservation import Reservation, ReservationStatus
from app.models.check_in import CheckInRecord

__all__ = [
    "Building", "Floor", "Space", "User",
    "Reservation", "ReservationStatus", "CheckInRecord",
]
