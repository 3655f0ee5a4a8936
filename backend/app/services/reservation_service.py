"""
Reservation service: booking, editing and lifecycle transitions.

CONCURRENCY STRATEGY: Per-space and per-user version tokens
==========================================================

Problem:
  Two users try to book the same space for overlapping slots at once.
  Both scan the space's reservations, both see no conflict, both insert.
  Result: Double booking. The same race lets one user slip past the quota
  by firing several requests in parallel.

Solution:
  The space row carries a `version` column and the user row a
  `booking_version`. The booking unit is:

  1. Read both tokens (plain column selects, never the identity map)
  2. Availability (re-read after the tokens) -> conflict scan -> quota scan
  3. UPDATE spaces SET version = version + 1
     WHERE id = :space_id AND version = :seen_version
     (and the same compare-and-set on users.booking_version)
  4. If either UPDATE matched 0 rows, someone else booked on this space or
     for this user after our scan -> roll back and redo from step 1
  5. INSERT the reservation

  Any writer that could invalidate our scan must bump the same token, so
  the scan and the insert behave as one serializable unit per space and
  per user. Retries are bounded by BOOKING_MAX_RETRY_ATTEMPTS; running out
  surfaces as StoreFailure.

  Lifecycle transitions only touch one row, so they rely on the
  reservation's own version_id_col instead.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    Forbidden,
    NotFound,
    QuotaExceeded,
    ReservationError,
    ScheduleConflict,
    SpaceUnavailable,
    StoreFailure,
    ValidationFailed,
)
from app.core.logging import get_logger
from app.core.metrics import record_reservation_attempt, record_transition, reservation_latency
from app.core.security import Actor
from app.core.timeutils import Interval, as_utc, utcnow
from app.db.repository import Repository, VersionConflict, with_transaction
from app.models.check_in import CheckInRecord
from app.models.reservation import Reservation, ReservationStatus
from app.models.space import Space
from app.models.user import User
from app.schemas.reservation import ReservationCreate, ReservationUpdate
from app.services.availability import ensure_bookable
from app.services.booking_rules import check_booking_rules, resolve_booking_rules
from app.services.conflict_service import find_conflict
from app.services.directory import resolve_space_chain
from app.services.lifecycle import (
    apply_transition,
    ensure_check_in_window,
    ensure_editable,
    ensure_transition,
)
from app.services.quota_service import enforce_quota

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class ReservationFilters:
    status: Optional[str] = None
    space_id: Optional[int] = None
    user_id: Optional[int] = None
    start_from: Optional[datetime] = None
    start_to: Optional[datetime] = None


def _outcome(error: ReservationError) -> str:
    if isinstance(error, ScheduleConflict):
        return "conflict"
    if isinstance(error, QuotaExceeded):
        return "quota"
    if isinstance(error, SpaceUnavailable):
        return "unavailable"
    if isinstance(error, StoreFailure):
        return "error"
    return "invalid"


def _interval_context(space_id: int, user_id: int, interval: Interval) -> dict:
    return {
        "space_id": space_id,
        "user_id": user_id,
        "start": interval.start.isoformat(),
        "end": interval.end.isoformat(),
    }


def _validate_interval(interval: Interval, now: datetime, check_past: bool = True) -> None:
    if not interval.is_valid:
        raise ValidationFailed("start_time must be before end_time")
    if check_past and interval.start <= now:
        raise ValidationFailed("start_time cannot be in the past")


def _ensure_can_act(actor: Actor, reservation: Reservation) -> None:
    if not actor.can_act_on(reservation.user_id):
        logger.warning(
            "reservation_access_denied",
            reservation_id=reservation.id,
            actor_id=actor.user_id,
            owner_id=reservation.user_id,
        )
        raise Forbidden("You can only manage your own reservations", reservation_id=reservation.id)


async def _load_reservation(db: AsyncSession, reservation_id: int) -> Reservation:
    reservation = await Repository(db, Reservation).get(reservation_id)
    if not reservation:
        raise NotFound(f"Reservation {reservation_id} not found", reservation_id=reservation_id)
    return reservation


async def _read_tokens(db: AsyncSession, space_id: int, user_id: int) -> tuple[int, int]:
    space_version = (
        await db.execute(select(Space.version).where(Space.id == space_id))
    ).scalar_one_or_none()
    if space_version is None:
        raise NotFound(f"Space {space_id} not found", space_id=space_id)

    user_version = (
        await db.execute(select(User.booking_version).where(User.id == user_id))
    ).scalar_one_or_none()
    if user_version is None:
        raise NotFound(f"User {user_id} not found", user_id=user_id)

    return space_version, user_version


async def _claim_tokens(
    db: AsyncSession,
    space_id: int,
    space_version: int,
    user_id: int,
    user_version: int,
) -> None:
    # Always space first, then user
    result = await db.execute(
        update(Space)
        .where(Space.id == space_id, Space.version == space_version)
        .values(version=Space.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise VersionConflict("Space", space_id)

    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.booking_version == user_version)
        .values(booking_version=User.booking_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise VersionConflict("User", user_id)


async def _ensure_slot_free(
    db: AsyncSession,
    space_id: int,
    user_id: int,
    interval: Interval,
    quota: int,
    tokens: tuple[int, int],
    exclude_reservation_id: Optional[int] = None,
) -> None:
    """
    Conflict scan, quota scan and token claim; the heart of the booking unit.
    `tokens` must have been read before anything the scans depend on, space
    availability included.
    """
    space_version, user_version = tokens

    conflict = await find_conflict(db, space_id, interval, exclude_reservation_id)
    if conflict:
        logger.warning(
            "reservation_conflict",
            conflicting_reservation_id=conflict.id,
            **_interval_context(space_id, user_id, interval),
        )
        raise ScheduleConflict(
            "Space is already reserved for this time",
            space_id=space_id,
            conflicting_reservation_id=conflict.id,
        )

    await enforce_quota(db, user_id, interval, quota, exclude_reservation_id)
    await _claim_tokens(db, space_id, space_version, user_id, user_version)


async def create_reservation(
    db: AsyncSession,
    actor: Actor,
    data: ReservationCreate,
    now: Optional[datetime] = None,
) -> Reservation:
    """
    Book a space for the acting user.
    Retries the whole unit on version conflicts, up to BOOKING_MAX_RETRY_ATTEMPTS.
    """
    now = as_utc(now) if now else utcnow()
    interval = Interval(data.start_time, data.end_time)
    log_context = _interval_context(data.space_id, actor.user_id, interval)
    started = time.perf_counter()

    async def attempt() -> Reservation:
        # Tokens first: a deactivation committed after this read fails our claim
        tokens = await _read_tokens(db, data.space_id, actor.user_id)
        chain = await resolve_space_chain(db, data.space_id, fresh=True)
        ensure_bookable(chain)

        if data.attendees_count > chain.space.capacity:
            raise ValidationFailed(
                f"attendees_count ({data.attendees_count}) exceeds space capacity ({chain.space.capacity})"
            )

        rules = resolve_booking_rules(chain.building)
        check_booking_rules(rules, interval, now)

        await _ensure_slot_free(
            db, data.space_id, actor.user_id, interval, rules.max_concurrent_bookings, tokens
        )

        reservation = Reservation(
            space_id=data.space_id,
            user_id=actor.user_id,
            start_time=interval.start,
            end_time=interval.end,
            title=(data.title or "").strip() or "Reservation",
            description=data.description.strip() if data.description else None,
            attendees_count=data.attendees_count,
            status=ReservationStatus.CONFIRMED,
            created_by=actor.user_id,
        )
        Repository(db, Reservation).add(reservation)
        await db.flush()
        await db.refresh(reservation)
        return reservation

    try:
        _validate_interval(interval, now)
        reservation = await with_transaction(
            db,
            attempt,
            operation="create",
            max_attempts=settings.BOOKING_MAX_RETRY_ATTEMPTS,
            **log_context,
        )
    except ReservationError as e:
        record_reservation_attempt("create", _outcome(e))
        raise

    reservation_latency.labels(operation="create").observe(time.perf_counter() - started)
    record_reservation_attempt("create", "success")
    logger.info("reservation_created", reservation_id=reservation.id, **log_context)

    return reservation


async def update_reservation(
    db: AsyncSession,
    actor: Actor,
    reservation_id: int,
    patch: ReservationUpdate,
    now: Optional[datetime] = None,
) -> Reservation:
    """
    Edit a confirmed or checked-in reservation.
    A changed interval goes through the same conflict/quota unit as a new
    booking, ignoring the reservation itself.
    """
    now = as_utc(now) if now else utcnow()
    changes = patch.model_dump(exclude_unset=True)
    started = time.perf_counter()

    async def attempt() -> Reservation:
        reservation = await _load_reservation(db, reservation_id)
        _ensure_can_act(actor, reservation)
        ensure_editable(reservation)

        new_start = changes.get("start_time") or reservation.start_time
        new_end = changes.get("end_time") or reservation.end_time
        interval = Interval(new_start, new_end)
        current = Interval(reservation.start_time, reservation.end_time)
        chain = None

        if interval != current:
            start_moved = interval.start != current.start
            _validate_interval(interval, now, check_past=start_moved)

            tokens = await _read_tokens(db, reservation.space_id, reservation.user_id)
            chain = await resolve_space_chain(db, reservation.space_id, fresh=True)
            rules = resolve_booking_rules(chain.building)
            check_booking_rules(rules, interval, now)

            await _ensure_slot_free(
                db,
                reservation.space_id,
                reservation.user_id,
                interval,
                rules.max_concurrent_bookings,
                tokens,
                exclude_reservation_id=reservation.id,
            )
            reservation.start_time = interval.start
            reservation.end_time = interval.end

        attendees = changes.get("attendees_count")
        if attendees is not None:
            if chain is None:
                chain = await resolve_space_chain(db, reservation.space_id)
            if attendees > chain.space.capacity:
                raise ValidationFailed(
                    f"attendees_count ({attendees}) exceeds space capacity ({chain.space.capacity})"
                )
            reservation.attendees_count = attendees

        if changes.get("title"):
            reservation.title = changes["title"].strip()
        if "description" in changes:
            description = changes["description"]
            reservation.description = description.strip() if description else None

        await db.flush()
        await db.refresh(reservation)
        return reservation

    try:
        reservation = await with_transaction(
            db,
            attempt,
            operation="update",
            max_attempts=settings.BOOKING_MAX_RETRY_ATTEMPTS,
            reservation_id=reservation_id,
            actor_id=actor.user_id,
        )
    except ReservationError as e:
        record_reservation_attempt("update", _outcome(e))
        raise

    reservation_latency.labels(operation="update").observe(time.perf_counter() - started)
    record_reservation_attempt("update", "success")
    logger.info(
        "reservation_updated",
        reservation_id=reservation.id,
        actor_id=actor.user_id,
        fields=sorted(changes),
    )

    return reservation


async def _run_transition(
    db: AsyncSession,
    actor: Actor,
    reservation_id: int,
    target: str,
    now: datetime,
    operation: str,
    prepare=None,
    after=None,
    **extra_fields,
) -> Reservation:
    """
    Load, authorize, guard and apply one lifecycle transition.
    `prepare` runs extra guards before the status changes; `after` runs once
    the status change has been flushed, inside the same retried unit.
    """

    async def attempt() -> tuple[Reservation, str]:
        reservation = await _load_reservation(db, reservation_id)
        _ensure_can_act(actor, reservation)
        ensure_transition(reservation, target)
        if prepare is not None:
            await prepare(reservation)

        previous = apply_transition(reservation, target, actor.user_id, now)
        for field, value in extra_fields.items():
            setattr(reservation, field, value)
        await db.flush()
        if after is not None:
            await after(reservation)
        await db.refresh(reservation)
        return reservation, previous

    reservation, previous = await with_transaction(
        db,
        attempt,
        operation=operation,
        max_attempts=settings.BOOKING_MAX_RETRY_ATTEMPTS,
        reservation_id=reservation_id,
        actor_id=actor.user_id,
    )

    record_transition(previous, target)
    logger.info(
        f"reservation_{operation}",
        reservation_id=reservation.id,
        actor_id=actor.user_id,
        from_status=previous,
        to_status=target,
    )
    return reservation


async def cancel_reservation(
    db: AsyncSession,
    actor: Actor,
    reservation_id: int,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    """Cancel at any time unless the reservation is already completed or cancelled."""
    now = as_utc(now) if now else utcnow()
    return await _run_transition(
        db,
        actor,
        reservation_id,
        ReservationStatus.CANCELLED,
        now,
        operation="cancelled",
        cancellation_reason=reason.strip() if reason else None,
    )


async def check_in(
    db: AsyncSession,
    actor: Actor,
    reservation_id: int,
    now: Optional[datetime] = None,
) -> Reservation:
    """
    Check in from `check_in_window_minutes` before the start until the end.
    Writes an immutable CheckInRecord alongside the status change.
    """
    now = as_utc(now) if now else utcnow()

    async def within_window(reservation: Reservation) -> None:
        chain = await resolve_space_chain(db, reservation.space_id)
        rules = resolve_booking_rules(chain.building)
        ensure_check_in_window(reservation, now, rules.check_in_window_minutes)

    async def record_check_in(reservation: Reservation) -> None:
        # Written after the status flush so a lost race fails on the version check first
        Repository(db, CheckInRecord).add(
            CheckInRecord(
                reservation_id=reservation.id,
                user_id=reservation.user_id,
                space_id=reservation.space_id,
                checked_in_at=now,
                checked_in_by=actor.user_id,
            )
        )
        await db.flush()

    return await _run_transition(
        db,
        actor,
        reservation_id,
        ReservationStatus.CHECKED_IN,
        now,
        operation="checked_in",
        prepare=within_window,
        after=record_check_in,
    )


async def check_out(
    db: AsyncSession,
    actor: Actor,
    reservation_id: int,
    now: Optional[datetime] = None,
) -> Reservation:
    now = as_utc(now) if now else utcnow()
    return await _run_transition(
        db,
        actor,
        reservation_id,
        ReservationStatus.COMPLETED,
        now,
        operation="checked_out",
    )


async def get_reservation(db: AsyncSession, actor: Actor, reservation_id: int) -> Reservation:
    reservation = await _load_reservation(db, reservation_id)
    _ensure_can_act(actor, reservation)
    return reservation


async def list_reservations(
    db: AsyncSession,
    actor: Actor,
    filters: ReservationFilters,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Reservation], int]:
    """
    List reservations, newest start first.
    Non-admins only ever see their own; admins may filter by user.
    """
    clauses = []
    if not actor.is_admin:
        clauses.append(Reservation.user_id == actor.user_id)
    elif filters.user_id is not None:
        clauses.append(Reservation.user_id == filters.user_id)

    if filters.status:
        clauses.append(Reservation.status == filters.status)
    if filters.space_id is not None:
        clauses.append(Reservation.space_id == filters.space_id)
    if filters.start_from is not None:
        clauses.append(Reservation.start_time >= as_utc(filters.start_from))
    if filters.start_to is not None:
        clauses.append(Reservation.start_time <= as_utc(filters.start_to))

    query = select(Reservation).where(*clauses)
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()

    result = await db.execute(
        query
        .order_by(Reservation.start_time.desc(), Reservation.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
