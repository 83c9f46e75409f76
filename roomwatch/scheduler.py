"""Long-running loop that alternates pipeline cycles with randomized pauses."""

from __future__ import annotations

import enum
import logging
import random
import signal
import threading
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from .config import Settings
from .errors import ErrorBuffer
from .mailer import Mailer
from .util import Sleeper, format_delay

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

WAKE_OFFSET_MINUTES = (10, 50)


class ActivityState(str, enum.Enum):
    ACTIVE = "active"
    QUIET = "quiet"


def activity_state(hour: int, start: int = 8, end: int = 1) -> ActivityState:
    """Quiet between *end* (inclusive) and *start* (exclusive), active otherwise.

    With start=8 and end=1 the process is active from 08:00 to 00:59.
    """

    if end <= hour < start:
        return ActivityState.QUIET
    return ActivityState.ACTIVE


def next_wake_time(now: datetime, start: int, offset_minutes: int) -> datetime:
    """Today's *start* hour plus *offset_minutes*, in the timezone of *now*."""

    return now.replace(hour=start, minute=0, second=0, microsecond=0) + timedelta(minutes=offset_minutes)


class Scheduler:
    """Runs *run_cycle* while active and sleeps through quiet hours.

    ``stop()`` (also wired to SIGINT/SIGTERM by ``run()``) is honoured between
    iterations: a cycle in progress always completes, and the default sleep
    returns early once a stop was requested.
    """

    def __init__(
        self,
        run_cycle: Callable[[], object],
        errors: ErrorBuffer,
        mailer: Optional[Mailer] = None,
        *,
        start: int = 8,
        end: int = 1,
        delay: Tuple[float, float] = (240.0, 720.0),
        tz: Optional[tzinfo] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleeper] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.run_cycle = run_cycle
        self.errors = errors
        self.mailer = mailer
        self.start = start
        self.end = end
        self.delay = delay
        self.tz = tz
        self._stop = threading.Event()
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.sleep = sleep or self._stop.wait
        self.rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        run_cycle: Callable[[], object],
        errors: ErrorBuffer,
        mailer: Optional[Mailer] = None,
        **kwargs,
    ) -> "Scheduler":
        tz = ZoneInfo(settings.timezone) if settings.timezone else None
        return cls(
            run_cycle,
            errors,
            mailer,
            start=settings.time_start,
            end=settings.time_end,
            delay=(settings.cycle_delay_min, settings.cycle_delay_max),
            tz=tz,
            **kwargs,
        )

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    def stop(self) -> None:
        if self.running:
            logger.info("Stop requested; finishing the current iteration.")
        self._stop.set()

    def state(self) -> ActivityState:
        return activity_state(self.clock().hour, self.start, self.end)

    def run_once(self) -> ActivityState:
        """Run a single iteration and return the state it ran in."""

        state = self.state()
        if state is ActivityState.ACTIVE:
            logger.info("Starting cycle...")
            try:
                self.run_cycle()
            except Exception as exc:
                self.errors.capture(logger, "Scheduler", exc, "Cycle failed")
            seconds = self.rng.uniform(*self.delay)
            logger.info("Cycle complete. Next cycle in %s.", format_delay(seconds))
        else:
            now = self.clock()
            offset = self.rng.randint(*WAKE_OFFSET_MINUTES)
            wake = next_wake_time(now, self.start, offset)
            seconds = max((wake - now).total_seconds(), 0.0)
            logger.info("Outside active hours. Sleeping until %s.", wake.strftime("%H:%M"))

        if self.mailer is not None:
            self.mailer.send_error_digest()

        if self.running and seconds > 0:
            self.sleep(seconds)
        return state

    def run(self) -> None:
        """Loop until ``stop()`` is called or a termination signal arrives."""

        previous = self._install_signal_handlers()
        logger.info("Scheduler started (active %02d:00 to %02d:00).", self.start, self.end)
        try:
            while self.running:
                self.run_once()
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)
            logger.info("Scheduler stopped.")

    def _install_signal_handlers(self) -> dict:
        if threading.current_thread() is not threading.main_thread():
            return {}

        def _handle(signum, _frame) -> None:
            logger.info("Received %s.", signal.Signals(signum).name)
            self.stop()

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.getsignal(signum)
            signal.signal(signum, _handle)
        return previous


__all__ = ["ActivityState", "Scheduler", "activity_state", "next_wake_time"]
