"""Pydantic request models for the bookings API."""

from pydantic import BaseModel


class CreateBookingRequest(BaseModel):
    """
    Booking creation payload.

    Required fields are validated by the BookingOrchestrator so a missing
    field yields the domain error message rather than a schema error.
    """

    client_id: str | None = None
    branch_id: str | None = None
    date: str | None = None
    time: str | None = None
    service_ids: list[str] = []
    status: str | None = None
    notes: str | None = None


class UpdateBookingRequest(BaseModel):
    """Partial booking update; omitted fields are left unchanged."""

    client_id: str | None = None
    branch_id: str | None = None
    date: str | None = None
    time: str | None = None
    service_ids: list[str] | None = None
    status: str | None = None
    notes: str | None = None
