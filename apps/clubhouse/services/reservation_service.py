"""
Court reservations. A court takes one booking per date and start time.
"""

import logging
from datetime import date, time
from typing import Dict, Union
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import Court, Member, Reservation
from clubhouse.services.exceptions import NotFoundError, SlotTakenError, ValidationError
from clubhouse.utils.datetime_utils import format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)


def _slot_taken(court_id: int, day: date, start: time) -> SlotTakenError:
    return SlotTakenError(
        f"Court {court_id} is already booked on {day.isoformat()} at {format_hhmm(start)}",
        court_id=court_id,
        date=day.isoformat(),
        start_time=format_hhmm(start),
    )


async def reserve_court(
    store: LedgerStore,
    court_id: int,
    member_id: int,
    day: date,
    start_time: Union[str, time],
) -> Dict:
    """
    Book a court slot for a member.

    The new reservation is unpaid; its fee shows up as a pending debt.

    Raises:
        ValidationError: If start_time is not HH:MM
        NotFoundError: If the court or member does not exist
        SlotTakenError: If the court is already booked at that date and time
    """
    try:
        start = parse_hhmm(start_time)
    except ValueError as e:
        raise ValidationError(str(e), start_time=start_time)

    try:
        async with store.transaction() as session:
            court = await session.get(Court, court_id)
            if court is None:
                raise NotFoundError("Court", court_id)
            if await session.get(Member, member_id) is None:
                raise NotFoundError("Member", member_id)

            existing = await session.execute(
                select(Reservation.id).where(
                    and_(
                        Reservation.court_id == court_id,
                        Reservation.date == day,
                        Reservation.start_time == start,
                    )
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise _slot_taken(court_id, day, start)

            reservation = Reservation(
                court_id=court_id, member_id=member_id, date=day, start_time=start
            )
            session.add(reservation)
            await session.flush()
            reservation_id = reservation.id
            price = court.price
    except IntegrityError as e:
        # A concurrent booking took the slot first
        raise _slot_taken(court_id, day, start) from e

    logger.info(
        f"Court {court_id} reserved by member {member_id} on {day.isoformat()} "
        f"at {format_hhmm(start)}"
    )
    return {
        "id": reservation_id,
        "court_id": court_id,
        "member_id": member_id,
        "date": day.isoformat(),
        "start_time": format_hhmm(start),
        "price": price,
    }
