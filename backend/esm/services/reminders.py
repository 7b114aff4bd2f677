"""Daily experience-sampling reminders on an APScheduler cron schedule.

Each reminder is one cron job; when it fires the notification is pushed to
every subscribed listener (the open capture sockets).
"""
from dataclasses import dataclass
from datetime import datetime, time
from typing import Awaitable, Callable, List, Protocol, Sequence

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from esm.core.logger import get_logger

logger = get_logger(__name__)

REMINDER_TIMES = (time(9, 0), time(12, 0), time(15, 0), time(18, 0))
REMINDER_TITLE = "Experience sampling reminder!"
REMINDER_BODY = "Please record your mood and surroundings now."
JOB_PREFIX = "reminder_"

Listener = Callable[[dict], Awaitable[None]]


@dataclass(frozen=True)
class Reminder:
    at: time
    title: str = REMINDER_TITLE
    body: str = REMINDER_BODY
    repeats: bool = True

    @property
    def label(self) -> str:
        return self.at.strftime("%H:%M")

    def payload(self) -> dict:
        return {"title": self.title, "body": self.body, "at": self.label}


class Notifier(Protocol):
    def cancel_all(self) -> None: ...

    def schedule(self, reminder: Reminder) -> None: ...

    def scheduled(self) -> List[Reminder]: ...


class SchedulerNotifier:
    def __init__(self, scheduler: BaseScheduler):
        self.scheduler = scheduler
        self._listeners: List[Listener] = []

    @property
    def listeners(self) -> List[Listener]:
        return list(self._listeners)

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def cancel_all(self):
        self.scheduler.remove_all_jobs()

    def schedule(self, reminder: Reminder):
        trigger = CronTrigger(
            hour=reminder.at.hour, minute=reminder.at.minute, timezone=self.scheduler.timezone
        )
        self.scheduler.add_job(
            self.deliver,
            trigger,
            id=f"{JOB_PREFIX}{reminder.label}",
            args=[reminder],
            replace_existing=True,
        )

    def jobs(self):
        return [job for job in self.scheduler.get_jobs() if job.id.startswith(JOB_PREFIX)]

    def scheduled(self) -> List[Reminder]:
        return sorted((job.args[0] for job in self.jobs()), key=lambda r: r.at)

    async def deliver(self, reminder: Reminder):
        """Push one reminder to every listener; a failing listener is dropped."""
        logger.info(f"Reminder due at {reminder.label}: {reminder.title}")
        for listener in list(self._listeners):
            try:
                await listener(reminder.payload())
            except Exception as e:
                logger.warning(f"Dropping reminder listener: {e}")
                self.unsubscribe(listener)


def register_daily_reminders(notifier: Notifier, times: Sequence[time] = REMINDER_TIMES) -> List[Reminder]:
    """Replace any existing schedule with one reminder per time of day."""
    notifier.cancel_all()
    for at in times:
        notifier.schedule(Reminder(at=at))
    reminders = notifier.scheduled()
    logger.info(f"Reminders scheduled at {', '.join(r.label for r in reminders)} daily.")
    return reminders


def next_reminder(notifier: SchedulerNotifier, now: datetime) -> datetime:
    """Earliest fire time after `now` (timezone-aware) across the reminder jobs."""
    fire_times = [job.trigger.get_next_fire_time(None, now) for job in notifier.jobs()]
    fire_times = [t for t in fire_times if t is not None]
    if not fire_times:
        raise ValueError("no reminders scheduled")
    return min(fire_times)
