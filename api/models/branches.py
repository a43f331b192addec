"""Pydantic request models for branch calendar endpoints."""

from pydantic import BaseModel, Field


class BranchCalendarRequest(BaseModel):
    """Branch name used to title the calendar."""

    branch_name: str = Field(..., min_length=1)


class RenameBranchCalendarRequest(BaseModel):
    old_branch_name: str = Field(..., min_length=1)
    new_branch_name: str = Field(..., min_length=1)
