"""
Bookings API.

Booking creation is delegated to the BookingOrchestrator, which stores the
booking and mirrors it to the branch's Google Calendar. Domain errors
(400/404/409) are raised as salon.exceptions and rendered by the app's
exception handlers.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_booking_orchestrator
from api.models.bookings import CreateBookingRequest, UpdateBookingRequest
from salon.services.booking_service import BookingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])

Orchestrator = Annotated[BookingOrchestrator, Depends(get_booking_orchestrator)]


@router.post("/createBookingperBranch", status_code=201)
async def create_booking_per_branch(body: CreateBookingRequest, orchestrator: Orchestrator) -> dict[str, Any]:
    """
    Create a booking and its calendar event.

    **Returns:** 201 with booking, calendar, cost, client and branch details.
    `calendar_created` is false (with `calendar_error`) when the event could
    not be created; the booking is stored either way.

    **Errors:**
    - **400**: Missing fields, invalid date/time
    - **404**: Branch not found
    - **409**: Slot already booked (`existing_booking_id`)
    """
    return await orchestrator.create_booking(body.model_dump())


@router.get("/getBookings")
async def get_bookings(
    orchestrator: Orchestrator,
    status: str | None = None,
    client_id: str | None = None,
    branch_id: str | None = None,
    date: str | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> dict[str, Any]:
    bookings = await orchestrator.list_bookings(
        status=status,
        client_id=client_id,
        branch_id=branch_id,
        date=date,
        limit=limit,
        offset=offset,
    )
    return {"bookings": bookings, "count": len(bookings), "limit": limit, "offset": offset}


@router.get("/getBooking/{booking_id}")
async def get_booking(booking_id: str, orchestrator: Orchestrator) -> dict[str, Any]:
    return {"booking": await orchestrator.get_booking(booking_id)}


@router.put("/updateBooking/{booking_id}")
async def update_booking(booking_id: str, body: UpdateBookingRequest, orchestrator: Orchestrator) -> dict[str, Any]:
    """Partially update a booking; a status change recolours its calendar event."""
    booking = await orchestrator.update_booking(booking_id, body.model_dump(exclude_none=True))
    return {"message": "Booking updated successfully", "booking": booking}


@router.delete("/deleteBooking/{booking_id}")
async def delete_booking(booking_id: str, orchestrator: Orchestrator) -> dict[str, Any]:
    result = await orchestrator.delete_booking(booking_id)
    return {"message": "Booking deleted successfully", **result}


@router.get("/getBookingsByDateRange")
async def get_bookings_by_date_range(
    orchestrator: Orchestrator,
    start_date: str | None = None,
    end_date: str | None = None,
    branch_id: str | None = None,
    status: str | None = None,
) -> dict[str, Any]:
    """Bookings between start_date and end_date (inclusive), ordered by date and time."""
    bookings = await orchestrator.list_bookings_by_date_range(start_date, end_date, branch_id, status)
    return {
        "bookings": bookings,
        "count": len(bookings),
        "date_range": {"start_date": start_date, "end_date": end_date},
    }
