"""
Availability resolver: a space is bookable only when its whole chain is active.
"""

from app.core.exceptions import SpaceUnavailable
from app.services.directory import SpaceChain


def is_bookable(chain: SpaceChain) -> bool:
    return bool(
        chain.space.is_active
        and chain.space.is_bookable
        and chain.floor.is_active
        and chain.building.is_active
    )


def ensure_bookable(chain: SpaceChain) -> None:
    if is_bookable(chain):
        return
    if not chain.building.is_active:
        reason = "building is not active"
    elif not chain.floor.is_active:
        reason = "floor is not active"
    else:
        reason = "space is not available for booking"
    raise SpaceUnavailable(
        f"Space {chain.space.id} cannot be booked: {reason}",
        space_id=chain.space.id,
    )
