"""
Booking status -> Google Calendar colour mapping.

colorId drives the event colour in Google Calendar; the background hex is kept
in the event's private extended properties for clients that render their own
full-background styling.
"""

from typing import Any

DEFAULT_COLOR_ID = "7"
DEFAULT_BACKGROUND = "#E3F2FD"

STATUS_COLOR_IDS: dict[str, str] = {
    "scheduled": "7",
    "confirmed": "10",
    "pending": "5",
    "cancelled": "11",
    "completed": "9",
    "no-show": "8",
    "rescheduled": "6",
}

STATUS_BACKGROUNDS: dict[str, str] = {
    "scheduled": "#E3F2FD",
    "confirmed": "#E8F5E8",
    "pending": "#FFF3E0",
    "cancelled": "#FFEBEE",
    "completed": "#F3E5F5",
    "no-show": "#FAFAFA",
    "rescheduled": "#E1F5FE",
}

COLOR_NAMES: dict[str, str] = {
    "1": "Light Blue",
    "2": "Red-Orange",
    "3": "Teal",
    "4": "Pink",
    "5": "Yellow",
    "6": "Orange",
    "7": "Blue",
    "8": "Gray",
    "9": "Purple",
    "10": "Green",
    "11": "Red",
}


def _normalize(status: str | None) -> str:
    return (status or "").strip().lower()


def get_status_color_id(status: str | None) -> str:
    return STATUS_COLOR_IDS.get(_normalize(status), DEFAULT_COLOR_ID)


def get_status_background(status: str | None) -> str:
    return STATUS_BACKGROUNDS.get(_normalize(status), DEFAULT_BACKGROUND)


def get_color_name(color_id: str) -> str:
    return COLOR_NAMES.get(str(color_id), "Unknown")


def status_footer(status: str | None) -> str:
    """Description footer describing the status colour."""
    color_id = get_status_color_id(status)
    label = _normalize(status).upper() or "UNKNOWN"
    return (
        f"Status: {label}\n"
        f"Color: {get_color_name(color_id)} (ID: {color_id})\n"
        f"Background: {get_status_background(status)}"
    )


def apply_status_colors(event: dict[str, Any], status: str | None, booking_id: str) -> dict[str, Any]:
    """
    Return a copy of an event body with status colour fields applied.

    Sets colorId, stores booking_id/status/background_color in
    extendedProperties.private and appends the status footer to the
    description.
    """
    enhanced = dict(event)
    enhanced["colorId"] = get_status_color_id(status)
    enhanced["extendedProperties"] = {
        "private": {
            "booking_id": booking_id,
            "status": _normalize(status) or "unknown",
            "background_color": get_status_background(status),
        }
    }
    description = enhanced.get("description") or ""
    enhanced["description"] = f"{description}\n\n{status_footer(status)}".lstrip("\n")
    return enhanced
