import datetime
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import pandas as pd


REPORT_PERIODS = ('daily', 'weekly', 'monthly')


def report_window(period: str, end: datetime.datetime):
    """(start, end) for a report period ending at ``end``."""
    if period == 'daily':
        return end - datetime.timedelta(days=1), end
    if period == 'weekly':
        return end - datetime.timedelta(days=7), end
    if period == 'monthly':
        return (pd.Timestamp(end) - pd.DateOffset(months=1)).to_pydatetime(), end
    raise ValueError(f"unknown report period: {period}")


class ReportSchedule:
    """Decides which reports are due at a given wall-clock minute.

    Daily fires at HH:MM once per day; weekly and monthly fire during the
    daily hour on their configured weekday (0=Sunday) or day of month, once
    per day and once per month respectively.
    """

    def __init__(self, daily=True, daily_time='09:00', weekly=True, weekly_day=0, monthly=True, monthly_day=1):
        self.daily = daily
        self.weekly = weekly
        self.monthly = monthly
        self.weekly_day = weekly_day
        self.monthly_day = monthly_day
        hour, minute = daily_time.split(':')
        self.hour, self.minute = int(hour), int(minute)
        self._last_daily: Optional[datetime.date] = None
        self._last_weekly: Optional[datetime.date] = None
        self._last_monthly = None

    @classmethod
    def from_settings(cls, settings):
        return cls(
            daily=settings.REPORT_DAILY,
            daily_time=settings.REPORT_DAILY_TIME,
            weekly=settings.REPORT_WEEKLY,
            weekly_day=settings.REPORT_WEEKLY_DAY,
            monthly=settings.REPORT_MONTHLY,
            monthly_day=settings.REPORT_MONTHLY_DAY,
        )

    def due_reports(self, now: datetime.datetime) -> List[str]:
        due = []
        today = now.date()
        sunday_based_weekday = (now.weekday() + 1) % 7

        if self.daily and now.hour == self.hour and now.minute == self.minute:
            if self._last_daily != today:
                due.append('daily')
                self._last_daily = today

        if self.weekly and sunday_based_weekday == self.weekly_day and now.hour == self.hour:
            if self._last_weekly != today:
                due.append('weekly')
                self._last_weekly = today

        if self.monthly and now.day == self.monthly_day and now.hour == self.hour:
            if self._last_monthly != (now.year, now.month):
                due.append('monthly')
                self._last_monthly = (now.year, now.month)

        return due


@dataclass
class Job:
    name: str
    interval: float
    func: Callable[[], object]
    next_run: float


class Scheduler:
    """Independent periodic jobs driven from one loop.

    Jobs never overlap: each due job runs to completion before the next one
    starts. ``stop()`` (or the shared event) ends the loop after the job in
    flight returns.
    """

    def __init__(self, stop_event: Optional[threading.Event] = None, clock=time.monotonic):
        self.jobs: List[Job] = []
        self.stop_event = stop_event or threading.Event()
        self.clock = clock

    def add_job(self, name: str, interval: float, func, run_immediately=False) -> Job:
        first = self.clock() if run_immediately else self.clock() + interval
        job = Job(name=name, interval=interval, func=func, next_run=first)
        self.jobs.append(job)
        logging.info(f"Scheduled job '{name}' every {interval:.0f}s")
        return job

    def run_pending(self) -> int:
        ran = 0
        for job in self.jobs:
            if self.stop_event.is_set():
                break
            now = self.clock()
            if job.next_run > now:
                continue
            try:
                job.func()
            except Exception as e:
                logging.error(f"Job '{job.name}' failed: {e}")
            job.next_run += job.interval
            if job.next_run <= now:
                # Skip missed ticks instead of bursting to catch up
                job.next_run = now + job.interval
            ran += 1
        return ran

    def seconds_until_next(self) -> float:
        if not self.jobs:
            return 60.0
        return max(0.0, min(j.next_run for j in self.jobs) - self.clock())

    def run_forever(self):
        logging.info(f"Scheduler started with {len(self.jobs)} jobs")
        while not self.stop_event.is_set():
            self.run_pending()
            self.stop_event.wait(self.seconds_until_next())
        logging.info("Scheduler stopped")

    def stop(self):
        self.stop_event.set()
