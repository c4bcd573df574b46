import argparse
import logging
import signal
import sys
import threading

from stealwatch import __version__
from stealwatch.clients.llm import LLMClient
from stealwatch.collectors.cpu import CPUSampler
from stealwatch.collectors.disk import DiskLatencyProbe
from stealwatch.core.config import settings
from stealwatch.core.database import create_db_engine
from stealwatch.core.exceptions import ConfigError, DeliveryError
from stealwatch.receivers import ReportManager, TelegramReceiver
from stealwatch.services.analyzer import RiskAnalyzer
from stealwatch.services.collection import Collector
from stealwatch.services.scheduler import REPORT_PERIODS, ReportSchedule, Scheduler
from stealwatch.services.store import MetricStore


CLEANUP_INTERVAL = 24 * 3600
REPORT_CHECK_INTERVAL = 60


def build_parser():
    p = argparse.ArgumentParser(
        prog='stealwatch',
        description='Track CPU steal, I/O latency and memory pressure on a VPS and report oversell risk.',
    )
    p.add_argument('-V', '--version', action='version', version=f"stealwatch {__version__}")
    p.add_argument('--validate', action='store_true', help='validate configuration and exit')
    p.add_argument('--test-telegram', action='store_true', help='send a test message and exit')
    p.add_argument('--collect-once', action='store_true', help='collect every metric once and exit')
    p.add_argument('--report', choices=REPORT_PERIODS, help='generate and send a report now')
    return p


def cleanup_job(store, retention_days):
    deleted = store.cleanup(retention_days)
    logging.info(f"Retention sweep removed {deleted} samples")


def run_daemon(store, collector, report_manager, schedule):
    stop_event = threading.Event()
    scheduler = Scheduler(stop_event=stop_event)

    def _shutdown(signum, frame):
        logging.info(f"Received signal {signal.Signals(signum).name}, stopping...")
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    # Samplers run once at startup so the first report has data
    scheduler.add_job('cpu', settings.cpu_steal_interval, collector.collect_cpu, run_immediately=True)
    scheduler.add_job('benchmark', settings.cpu_bench_interval, collector.collect_benchmark, run_immediately=True)
    scheduler.add_job('io', settings.io_test_interval, collector.collect_io, run_immediately=True)
    scheduler.add_job('cleanup', CLEANUP_INTERVAL, lambda: cleanup_job(store, settings.RETENTION_DAYS))
    scheduler.add_job('reports', REPORT_CHECK_INTERVAL, lambda: report_manager.check_schedule(schedule))

    scheduler.run_forever()
    report_manager.shutdown(wait=True)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        settings.validate()
    except ConfigError as e:
        logging.error(f"Invalid configuration: {e}")
        return 1
    if args.validate:
        print("✅ Configuration is valid")
        return 0

    telegram = TelegramReceiver(settings.TELEGRAM_BOT_TOKEN, settings.TELEGRAM_CHAT_ID, settings.HOSTNAME_LABEL)
    if args.test_telegram:
        try:
            telegram.test_connection()
        except DeliveryError as e:
            logging.error(f"Telegram connection test failed: {e}")
            return 1
        print("✅ Telegram connection works")
        return 0

    store = MetricStore(create_db_engine(settings.DATABASE_URL))
    store.init_db()
    try:
        probe = DiskLatencyProbe(test_size_mb=settings.IO_TEST_SIZE_MB)
        collector = Collector(store, CPUSampler(), probe)

        if args.collect_once:
            collector.collect_all()
            print("✅ Collection complete")
            return 0

        analyzer = RiskAnalyzer(store, probe=probe)
        report_manager = ReportManager(analyzer, LLMClient.from_settings(settings), [telegram])

        if args.report:
            if not report_manager.report(args.report):
                logging.error(f"{args.report} report was not delivered")
                return 1
            print(f"✅ {args.report} report sent")
            return 0

        logging.info(f"stealwatch {__version__} starting on {settings.HOSTNAME_LABEL}")
        run_daemon(store, collector, report_manager, ReportSchedule.from_settings(settings))
        return 0
    finally:
        store.close()


if __name__ == '__main__':
    sys.exit(main())
