from datetime import datetime
from pydantic import BaseModel


class ReminderSchedule(BaseModel):
    times: list[str]
    next_due: datetime
