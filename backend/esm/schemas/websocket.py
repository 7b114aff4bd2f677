from pydantic import BaseModel
from typing import Optional


class CaptureCommand(BaseModel):
    action: str
    score: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
