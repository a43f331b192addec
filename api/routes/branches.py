"""
Branch calendar API.

Provisioning, rename, deletion and sharing of the Google Calendar that holds a
branch's bookings.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_calendar_registry, get_permission_tracker
from api.models.branches import BranchCalendarRequest, RenameBranchCalendarRequest
from salon.exceptions import NotFoundError
from salon.services.calendar_registry import CalendarRegistry
from salon.services.permission_tracker import PermissionTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/branches", tags=["branches"])

Registry = Annotated[CalendarRegistry, Depends(get_calendar_registry)]
Tracker = Annotated[PermissionTracker, Depends(get_permission_tracker)]


def _result_response(result: dict[str, Any], success_status: int = 200) -> JSONResponse:
    """Registry results carry success=False on provider failure."""
    if result.get("success"):
        return JSONResponse(status_code=success_status, content=result)
    return JSONResponse(status_code=500, content=result)


@router.post("/createBranchCalendar/{branch_id}")
async def create_branch_calendar(
    branch_id: str,
    registry: Registry,
    body: BranchCalendarRequest | None = None,
) -> JSONResponse:
    """
    Provision (or adopt) the branch calendar and share it with staff.

    branch_name defaults to the name stored on the branch.

    **Errors:**
    - **404**: Branch not found (when branch_name is omitted)
    - **500**: Google Calendar failure (`success: false`)
    """
    branch_name = body.branch_name if body else await registry.lookup_branch_name(branch_id)
    if branch_name is None:
        raise NotFoundError("Branch not found", {"branch_id": branch_id})

    result = await registry.provision_branch_calendar(branch_name, branch_id)
    return _result_response(result, success_status=201)


@router.put("/updateBranchCalendar/{branch_id}")
async def update_branch_calendar(
    branch_id: str,
    body: RenameBranchCalendarRequest,
    registry: Registry,
) -> JSONResponse:
    """Follow a branch rename; the calendar ID is unchanged."""
    result = await registry.rename_branch_calendar(branch_id, body.old_branch_name, body.new_branch_name)
    return _result_response(result)


@router.delete("/deleteBranchCalendar/{branch_id}")
async def delete_branch_calendar(
    branch_id: str,
    registry: Registry,
    branch_name: str | None = None,
) -> JSONResponse:
    result = await registry.delete_branch_calendar(branch_id, branch_name)
    return _result_response(result)


@router.get("/getBranchCalendar/{branch_id}")
async def get_branch_calendar(branch_id: str, registry: Registry) -> dict[str, Any]:
    record = await registry.get_calendar_info(branch_id)
    if record is None:
        raise NotFoundError("No calendar found for branch", {"branch_id": branch_id})
    return {"calendar": record}


@router.post("/shareBranchCalendar/{branch_id}")
async def share_branch_calendar(branch_id: str, registry: Registry, tracker: Tracker) -> dict[str, Any]:
    """
    Share the branch calendar with every authorized account lacking access.

    Accounts already flagged isCalendarShared are skipped.
    """
    record = await registry.get_calendar_info(branch_id)
    if record is None or not record.get("calendar_id"):
        raise NotFoundError("No calendar found for branch", {"branch_id": branch_id})

    result = await tracker.ensure_shared(record["calendar_id"], branch_id, record.get("branch_name") or "")
    return {"calendar_id": record["calendar_id"], "sharing_result": result.to_dict()}
