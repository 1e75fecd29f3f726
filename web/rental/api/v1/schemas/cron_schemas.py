from typing import List, Literal, Optional
from pydantic import BaseModel


class CronJobResult(BaseModel):
    name: str
    status: Literal["ok", "error"]
    error: Optional[str] = None


class CronReport(BaseModel):
    """Outcome of one scheduled batch"""
    ok: bool
    results: List[CronJobResult]
