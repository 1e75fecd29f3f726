from typing import Any, Dict, Optional
from datetime import datetime
from pydantic import BaseModel

from .booking_schemas import CamelOut


class NotificationMessage(BaseModel):
    """Translation key plus substitution variables, rendered by the client"""
    key: str
    vars: Optional[Dict[str, Any]] = None


class NotificationOut(CamelOut):
    id: str
    booking_id: Optional[str] = None
    type: str
    message: NotificationMessage
    read: bool
    created_at: datetime


class ClearedOut(BaseModel):
    deleted: int
