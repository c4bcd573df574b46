import concurrent.futures
import datetime
import logging
from typing import List

from stealwatch.core.exceptions import LLMError
from stealwatch.services.scheduler import report_window
from .base import BaseReceiver


class ReportManager:
    """Builds period reports and hands them to every receiver.

    ``async_report`` runs the whole thing on a worker pool so slow delivery
    never holds up the sampling loop.
    """

    def __init__(self, analyzer, llm, receivers: List[BaseReceiver], clock=datetime.datetime.now, max_workers=2):
        self.analyzer = analyzer
        self.llm = llm
        self.receivers = list(receivers)
        self.clock = clock
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)

    def build(self, period: str):
        # Windows are computed in UTC to match stored timestamps
        end = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
        start, end = report_window(period, end)
        stats = self.analyzer.analyze_period(period, start, end)
        try:
            narrative = self.llm.analyze(stats)
        except LLMError as e:
            logging.warning(f"AI analysis failed, sending rule-based report only: {e}")
            narrative = ''
        except Exception as e:
            # The narrative is optional; a client bug must not stop delivery
            logging.error(f"Unexpected AI client failure, sending rule-based report only: {e}")
            narrative = ''
        return stats, narrative

    def report(self, period: str) -> bool:
        stats, narrative = self.build(period)
        return self.broadcast(stats, narrative)

    def broadcast(self, stats, narrative='') -> bool:
        if not self.receivers:
            logging.warning("No report receivers enabled!")
            return False

        any_success = False
        for receiver in self.receivers:
            receiver_name = receiver.__class__.__name__
            try:
                receiver.send_report(stats, narrative)
                any_success = True
                logging.info(f"{stats.period} report delivered via {receiver_name}.")
            except Exception as e:
                logging.error(f"{stats.period} report via {receiver_name} failed: {e}")
        return any_success

    def _report_logged(self, period):
        try:
            self.report(period)
        except Exception as e:
            logging.error(f"Generating {period} report failed: {e}")

    def async_report(self, period: str):
        """Non-blocking report using a thread pool."""
        return self._executor.submit(self._report_logged, period)

    def check_schedule(self, schedule):
        for period in schedule.due_reports(self.clock()):
            logging.info(f"Scheduled {period} report is due")
            self.async_report(period)

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)
