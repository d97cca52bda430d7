from datetime import datetime

from .records import WEEKDAYS, DoerProfile, ScheduleEntry, as_utc


def weekday_and_clock(moment: datetime) -> tuple[str, str]:
    """Weekday name and zero-padded HH:MM of a moment, both in UTC."""
    utc = as_utc(moment)
    return WEEKDAYS[utc.weekday()], utc.strftime("%H:%M")


def schedule_entry_for(schedule: list[ScheduleEntry], day: str) -> ScheduleEntry | None:
    # first open entry wins if a day is listed twice
    for entry in schedule:
        if entry.day == day and entry.available:
            return entry
    return None


class AvailabilityEvaluator:
    """
    Decides whether a doer can take a task at a given time.

    Both the requested time and the weekly schedule hours are read in UTC.
    Windows that cross midnight (from > to) are not supported and never
    match.
    """

    def is_available(self, doer: DoerProfile, scheduled_time: datetime) -> bool:
        if doer.active_task_id is not None:
            return False

        day, clock = weekday_and_clock(scheduled_time)

        entry = schedule_entry_for(doer.availability.schedule, day)
        if entry is None:
            return False

        window = entry.hours
        if window.crosses_midnight:
            return False

        return window.from_ <= clock <= window.to
