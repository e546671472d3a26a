"""Pydantic schemas for the capture routes."""
from typing import Any

from pydantic import BaseModel


class CaptureRequest(BaseModel):
    url: str


class UserCaptureRequest(BaseModel):
    user_id: int | None = None


class SnapshotPush(BaseModel):
    # checked by build_snapshot so a non-list keeps the collector's message
    sketches: Any = None
    page_url: str = ""
