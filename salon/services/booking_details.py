"""
Read-only lookups used to build booking calendar events.

Clients, branches, services and categories are owned by other parts of the
POS; missing documents degrade to "Unknown ..." placeholders instead of
failing the booking.
"""

import logging
from typing import Any

from google.cloud.firestore_v1.base_query import FieldFilter

from database.models import Collections

logger = logging.getLogger(__name__)

# Firestore "in" filters accept at most this many values
IN_QUERY_CHUNK = 10

UNKNOWN_CLIENT = {"name": "Unknown Client", "email": "", "phone": "", "address": ""}
UNKNOWN_BRANCH = {"name": "Unknown Branch", "address": "", "phone": "", "email": ""}


async def get_client_details(db: Any, client_id: str) -> dict[str, str]:
    try:
        snapshot = await db.collection(Collections.CLIENTS).document(client_id).get()
    except Exception as e:
        logger.error(f"Error fetching client details for {client_id}: {e}")
        return dict(UNKNOWN_CLIENT)

    if not snapshot.exists:
        return dict(UNKNOWN_CLIENT)

    data = snapshot.to_dict() or {}
    return {
        "name": data.get("fullname") or UNKNOWN_CLIENT["name"],
        "email": data.get("email") or "",
        "phone": data.get("contactNo") or "",
        "address": data.get("address") or "",
    }


def branch_details_from(data: dict[str, Any] | None) -> dict[str, str]:
    """Project a branches document onto the fields used in events and responses."""
    if not data:
        return dict(UNKNOWN_BRANCH)
    return {
        "name": data.get("name") or UNKNOWN_BRANCH["name"],
        "address": data.get("address") or "",
        "phone": data.get("contactno") or "",
        "email": data.get("email") or "",
    }


async def get_category_name(db: Any, category_id: str | None) -> str:
    if not category_id:
        return "No Category"
    try:
        snapshot = await db.collection(Collections.CATEGORIES).document(category_id).get()
    except Exception as e:
        logger.error(f"Error fetching category {category_id}: {e}")
        return "Unknown Category"
    if not snapshot.exists:
        return "Unknown Category"
    return (snapshot.to_dict() or {}).get("name") or "Unknown Category"


async def get_services_details(db: Any, service_ids: list[str]) -> tuple[list[dict[str, Any]], float]:
    """
    Fetch service snapshots and their total price.

    Args:
        db: Firestore client
        service_ids: Values of the services' "id" field

    Returns:
        (services, total_cost) where each service is
        {"id", "name", "description", "category", "price"}
    """
    if not service_ids:
        return [], 0

    services: list[dict[str, Any]] = []
    total_cost = 0.0

    try:
        for start in range(0, len(service_ids), IN_QUERY_CHUNK):
            chunk = service_ids[start:start + IN_QUERY_CHUNK]
            query = db.collection(Collections.SERVICES).where(filter=FieldFilter("id", "in", chunk))
            async for doc in query.stream():
                data = doc.to_dict() or {}
                price = float(data.get("price") or 0)
                total_cost += price
                services.append(
                    {
                        "id": data.get("id", doc.id),
                        "name": data.get("name") or "Unknown Service",
                        "description": data.get("description") or "",
                        "category": await get_category_name(db, data.get("category")),
                        "price": price,
                    }
                )
    except Exception as e:
        logger.error(f"Error fetching services details: {e}")
        return [], 0

    return services, total_cost
