import html
import logging
import time

import requests

from stealwatch.core.exceptions import DeliveryError
from stealwatch.models.stats import PeriodStats, RiskLevel
from .base import BaseReceiver


SEPARATOR = "━━━━━━━━━━━━━━━━━━"

TITLES = {
    'daily': "📊 Daily oversell report",
    'weekly': "📊 Weekly oversell report",
    'monthly': "📊 Monthly oversell report",
}

RISK_DESCRIPTIONS = {
    RiskLevel.EXCELLENT: "✅ Excellent, no sign of overselling",
    RiskLevel.GOOD: "🟢 Good, minor resource contention",
    RiskLevel.MEDIUM: "⚠️ Medium, overselling is possible",
    RiskLevel.SEVERE: "🔴 Severe overselling, consider moving",
}


def format_hour_range(ts) -> str:
    return f"{ts.hour:02d}:00-{(ts.hour + 1) % 24:02d}:00 UTC"


def high_low_hours(hourly):
    """Top 3 hours by steal+iowait (only above 1%) and bottom 3 when >= 6 hours exist."""
    ranked = sorted(hourly, key=lambda h: h.cpu_steal_avg + h.cpu_iowait_avg, reverse=True)
    high = [h for h in ranked[:3] if h.cpu_steal_avg + h.cpu_iowait_avg > 1.0]
    low = list(reversed(ranked[-3:])) if len(ranked) >= 6 else []
    return high, low


def format_hours(hours) -> str:
    if not hours:
        return "-"
    return ", ".join(f"{h.hour:02d}:00 (S:{h.cpu_steal_avg:.1f}% W:{h.cpu_iowait_avg:.1f}%)" for h in hours)


def format_report(stats: PeriodStats, hostname: str, narrative: str = '') -> str:
    details = stats.risk_details
    lines = [
        f"{TITLES.get(stats.period, '📊 Oversell report')} | 🖥️ {hostname}",
        f"📅 {stats.end:%Y-%m-%d}",
        "",
        SEPARATOR,
        f"🖥️ CPU steal: {details.get('cpu_steal', '')}",
        f"   • Average: {stats.cpu_steal_avg:.2f}%",
        f"   • Peak: {stats.cpu_steal_max:.2f}%",
    ]
    if stats.cpu_steal_max_time is not None:
        lines.append(f"   • Peak hour: {format_hour_range(stats.cpu_steal_max_time)}")
    lines += [
        f"   • Benchmark variation: {stats.cpu_bench_cv:.3f}",
        "",
        f"⏳ CPU iowait: {details.get('cpu_iowait', '')}",
        f"   • Average: {stats.cpu_iowait_avg:.2f}%",
        f"   • Peak: {stats.cpu_iowait_max:.2f}%",
    ]
    if stats.cpu_iowait_max_time is not None:
        lines.append(f"   • Peak hour: {format_hour_range(stats.cpu_iowait_max_time)}")
    lines += [
        "",
        f"💾 Sequential write latency: {details.get('io_latency', '')}",
        f"   • P95: {stats.io_latency_p95:.2f}ms",
        f"   • P99: {stats.io_latency_p99:.2f}ms",
        f"   • Storage: {stats.storage_type.value}",
        "",
        f"🎲 Random I/O: {details.get('random_io', '')}",
        f"   • Write: {stats.random_io_write_avg:.2f}ms",
        f"   • Read: {stats.random_io_read_avg:.2f}ms",
        "",
        f"📀 Disk busy: {details.get('disk_busy', '')}",
    ]
    if stats.disk_busy_p95 > 0:
        lines.append(f"   • P95: {stats.disk_busy_p95:.1f}%")
    lines += [
        "",
        f"🧠 Memory: {details.get('memory', '')}",
        f"   • Available: {stats.memory_available_percent:.1f}%",
        "",
        f"📊 CPU load: {details.get('cpu_load', '')}",
        f"   • Load1 (per core): {stats.cpu_load_avg:.2f}",
        f"   • Peak (per core): {stats.cpu_load_max:.2f}",
        "",
        f"📈 Baseline: {details.get('baseline', '')}",
    ]
    if stats.baseline_deviation > 0:
        lines.append(f"   • Deviation: {stats.baseline_deviation:.1f}%")
    lines += [
        "",
        SEPARATOR,
        f"📈 Score: {stats.total_score:.0f}/100",
        f"📋 Risk level: {RISK_DESCRIPTIONS[stats.risk_level]}",
    ]

    if stats.period in ('weekly', 'monthly') and stats.hourly_breakdown:
        high, low = high_low_hours(stats.hourly_breakdown)
        lines += ["", "📊 By hour (UTC):"]
        if high:
            lines.append(f"   • Busiest: {format_hours(high)}")
        if low:
            lines.append(f"   • Quietest: {format_hours(low)}")

    if narrative:
        lines += ["", "🤖 AI analysis:", narrative]

    lines.append(SEPARATOR)
    return "\n".join(lines) + "\n"


class TelegramReceiver(BaseReceiver):
    def __init__(self, bot_token: str, chat_id: str, hostname: str, max_retries=3, sleep=time.sleep):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.hostname = hostname
        self.max_retries = max_retries
        self.sleep = sleep
        self.api_url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"

    def send_report(self, stats: PeriodStats, narrative: str = '') -> None:
        self.send_with_retry(format_report(stats, self.hostname, narrative))
        logging.info(f"Telegram {stats.period} report sent for {self.hostname}")

    def test_connection(self) -> None:
        self.send_message("✅ stealwatch is connected!")

    def send_with_retry(self, text: str) -> None:
        last_error = None
        for attempt in range(self.max_retries):
            if attempt > 0:
                # 1s, 2s, 4s...
                self.sleep(2 ** (attempt - 1))
            try:
                self.send_message(text)
                return
            except DeliveryError as e:
                last_error = e
                logging.warning(f"Telegram delivery attempt {attempt + 1}/{self.max_retries} failed: {e}")
        raise DeliveryError(f"giving up after {self.max_retries} attempts: {last_error}")

    def send_message(self, text: str) -> None:
        payload = {
            "chat_id": self.chat_id,
            "text": html.escape(text, quote=False),
            "parse_mode": "HTML"
        }
        try:
            response = requests.post(self.api_url, json=payload, timeout=30)
        except requests.RequestException as e:
            raise DeliveryError(f"request failed: {e}") from e
        if response.status_code != 200:
            raise DeliveryError(f"Telegram API error ({response.status_code}): {response.text}")
