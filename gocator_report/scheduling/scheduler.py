"""
Weekly report schedule and the wait/poll loop that drives it.
"""

import os
import time
import logging
from enum import Enum
from datetime import datetime, time as clock_time, timedelta
from typing import Callable, FrozenSet, Optional, Sequence
import pytz
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()

logger = logging.getLogger(__name__)

MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)
WEEKDAYS = frozenset({MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY})

LOOKAHEAD_DAYS = 8


class ScheduleSlot(BaseModel):
    """A time of day on which a report fires, on the given weekdays."""

    model_config = ConfigDict(frozen=True)

    time_of_day: clock_time
    weekdays: FrozenSet[int]

    def applies_to(self, weekday: int) -> bool:
        return weekday in self.weekdays


# Shift changes Monday to Friday, the Sunday night shift start, nothing on Saturday
DEFAULT_TEMPLATE = (
    ScheduleSlot(time_of_day=clock_time(6, 8), weekdays=WEEKDAYS),
    ScheduleSlot(time_of_day=clock_time(14, 0), weekdays=WEEKDAYS),
    ScheduleSlot(time_of_day=clock_time(22, 0), weekdays=WEEKDAYS),
    ScheduleSlot(time_of_day=clock_time(22, 0), weekdays=frozenset({SUNDAY})),
)


def next_slot(now: datetime, template: Sequence[ScheduleSlot] = DEFAULT_TEMPLATE) -> datetime:
    """Return the first slot strictly after ``now``.

    Days without any applicable slot are skipped whole. Raises ValueError when
    the template yields nothing within the lookahead.
    """
    for offset in range(LOOKAHEAD_DAYS + 1):
        day = now.date() + timedelta(days=offset)
        times = sorted(
            {slot.time_of_day for slot in template if slot.applies_to(day.weekday())}
        )

        for slot_time in times:
            candidate = datetime.combine(day, slot_time)
            if candidate > now:
                return candidate

    raise ValueError(f"Schedule template has no slot within {LOOKAHEAD_DAYS} days of {now}")


def plant_now(timezone: str = None) -> datetime:
    """Current wall-clock time at the plant, as a naive datetime."""
    tz = pytz.timezone(timezone or os.getenv('REPORT_TIMEZONE', 'Australia/Sydney'))
    return datetime.now(tz).replace(tzinfo=None)


class SchedulerState(str, Enum):
    IDLE = 'idle'
    ARMED = 'armed'
    FIRING = 'firing'


class Scheduler:
    """Arms the next slot, polls until it is due, then fires.

    The wait is broken into ``poll_interval`` sleeps so the tick callback can
    run between fires.
    """

    def __init__(
        self,
        template: Sequence[ScheduleSlot] = DEFAULT_TEMPLATE,
        poll_interval: float = None,
        clock: Callable[[], datetime] = None,
        sleep: Callable[[float], None] = None,
        timezone: str = None
    ):
        if not template or not any(slot.weekdays for slot in template):
            raise ValueError("Schedule template must contain at least one slot")

        self.template = tuple(template)
        if poll_interval is None:
            poll_interval = float(os.getenv('REPORT_POLL_INTERVAL_SECONDS', '30'))
        if poll_interval <= 0:
            raise ValueError("Poll interval must be positive")

        self.poll_interval = poll_interval
        self.timezone = timezone or os.getenv('REPORT_TIMEZONE', 'Australia/Sydney')
        self.clock = clock or (lambda: plant_now(self.timezone))
        self.sleep = sleep or time.sleep

        self.state = SchedulerState.IDLE
        self.armed_slot: Optional[datetime] = None

    def arm(self, now: datetime = None) -> datetime:
        """Idle -> Armed: compute and hold the next slot."""
        if self.state != SchedulerState.IDLE:
            raise RuntimeError(f"Cannot arm scheduler in state {self.state.value}")

        now = now or self.clock()
        self.armed_slot = next_slot(now, self.template)
        self.state = SchedulerState.ARMED

        delay = self.armed_slot - now
        logger.info(
            f"Next report scheduled at {self.armed_slot:%Y-%m-%d %H:%M:%S}. "
            f"Waiting for {delay.total_seconds() / 60:.2f} minutes..."
        )
        return self.armed_slot

    def wait(self, on_tick: Callable[[datetime], None] = None) -> datetime:
        """Armed -> Firing once the clock reaches the armed slot.

        ``on_tick`` runs after every sleep that wakes before the slot is due.
        """
        if self.state != SchedulerState.ARMED:
            raise RuntimeError(f"Cannot wait in state {self.state.value}")

        while True:
            remaining = (self.armed_slot - self.clock()).total_seconds()
            if remaining <= 0:
                break

            self.sleep(min(self.poll_interval, remaining))

            now = self.clock()
            if now < self.armed_slot and on_tick is not None:
                on_tick(now)

        self.state = SchedulerState.FIRING
        return self.armed_slot

    def complete(self) -> None:
        """Firing -> Idle, whatever the outcome of the fire."""
        self.state = SchedulerState.IDLE
        self.armed_slot = None

    def run_cycle(
        self,
        on_fire: Callable[[datetime], None],
        on_tick: Callable[[datetime], None] = None
    ) -> datetime:
        """Run one Idle -> Armed -> Firing -> Idle cycle and return the fired slot."""
        self.arm()
        slot = self.wait(on_tick)

        try:
            logger.info(f"Firing scheduled report for {slot:%Y-%m-%d %H:%M:%S}")
            on_fire(slot)
        finally:
            self.complete()

        return slot

    def run_forever(
        self,
        on_fire: Callable[[datetime], None],
        on_tick: Callable[[datetime], None] = None
    ) -> None:
        """Repeat cycles until the process is stopped."""
        while True:
            try:
                self.run_cycle(on_fire, on_tick)
            except Exception as e:
                logger.error(f"Schedule cycle failed: {e}")
                self.complete()
                self.sleep(self.poll_interval)
