"""Renewal workflow states and request/response payloads."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class RenewalState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    AWAITING_NEXT = "awaiting_next"
    FINISHED = "finished"
    ABORTED = "aborted"


class RenewalStartRequest(BaseModel):
    """Record ids to renew, in the order they should be edited."""

    record_ids: List[str] = Field(..., min_length=1, description="Policy ids to renew")


class RenewalStatus(BaseModel):
    """Where the renewal queue stands."""

    state: RenewalState
    head: Optional[str] = Field(None, description="Record currently being edited")
    remaining: List[str] = Field(default_factory=list, description="Persisted queue, head first")
    draft_scope: Optional[str] = Field(None, description="Draft scope for the head record")
