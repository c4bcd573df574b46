import os
import re
import socket

from .exceptions import ConfigError


_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|s|m|h)')
_DURATION_UNITS = {'ms': 0.001, 's': 1, 'm': 60, 'h': 3600}
_PLACEHOLDERS = ('', 'YOUR_BOT_TOKEN', 'YOUR_CHAT_ID', 'YOUR_API_KEY')


def parse_duration(value: str) -> float:
    """Parse a duration like '90s', '5m' or '1h30m' into seconds."""
    text = (value or '').strip()
    if not text:
        raise ValueError("empty duration")
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration: {value}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration: {value}")
    return total


def _env_bool(name, default):
    return os.environ.get(name, default).lower() == 'true'


class Settings:
    DATABASE_URL: str = os.environ.get('DATABASE_URL', 'sqlite:////var/lib/stealwatch/data.db')
    RETENTION_DAYS: int = int(os.environ.get('RETENTION_DAYS', 30))
    HOSTNAME_LABEL: str = os.environ.get('HOSTNAME_LABEL', socket.gethostname())
    LOG_LEVEL: str = os.environ.get('LOG_LEVEL', 'INFO')

    # Collection cadence
    CPU_STEAL_INTERVAL: str = os.environ.get('CPU_STEAL_INTERVAL', '5m')
    CPU_BENCH_INTERVAL: str = os.environ.get('CPU_BENCH_INTERVAL', '30m')
    IO_TEST_INTERVAL: str = os.environ.get('IO_TEST_INTERVAL', '15m')
    IO_TEST_SIZE_MB: int = int(os.environ.get('IO_TEST_SIZE_MB', 4))

    # Report schedule (weekday: 0=Sunday)
    REPORT_DAILY: bool = _env_bool('REPORT_DAILY', 'true')
    REPORT_DAILY_TIME: str = os.environ.get('REPORT_DAILY_TIME', '09:00')
    REPORT_WEEKLY: bool = _env_bool('REPORT_WEEKLY', 'true')
    REPORT_WEEKLY_DAY: int = int(os.environ.get('REPORT_WEEKLY_DAY', 0))
    REPORT_MONTHLY: bool = _env_bool('REPORT_MONTHLY', 'true')
    REPORT_MONTHLY_DAY: int = int(os.environ.get('REPORT_MONTHLY_DAY', 1))

    # Telegram reports
    TELEGRAM_BOT_TOKEN: str = os.environ.get('TELEGRAM_BOT_TOKEN', '')
    TELEGRAM_CHAT_ID: str = os.environ.get('TELEGRAM_CHAT_ID', '')

    # AI narrative
    AI_ENABLED: bool = _env_bool('AI_ENABLED', 'false')
    AI_API_URL: str = os.environ.get('AI_API_URL', 'https://api.openai.com/v1/chat/completions')
    AI_API_KEY: str = os.environ.get('AI_API_KEY', '')
    AI_MODEL: str = os.environ.get('AI_MODEL', 'gpt-4o-mini')
    AI_DAILY: bool = _env_bool('AI_DAILY', 'true')
    AI_WEEKLY: bool = _env_bool('AI_WEEKLY', 'true')
    AI_MONTHLY: bool = _env_bool('AI_MONTHLY', 'true')

    @property
    def cpu_steal_interval(self) -> float:
        return parse_duration(self.CPU_STEAL_INTERVAL)

    @property
    def cpu_bench_interval(self) -> float:
        return parse_duration(self.CPU_BENCH_INTERVAL)

    @property
    def io_test_interval(self) -> float:
        return parse_duration(self.IO_TEST_INTERVAL)

    def validate(self):
        if self.TELEGRAM_BOT_TOKEN in _PLACEHOLDERS:
            raise ConfigError("TELEGRAM_BOT_TOKEN is not configured")
        if self.TELEGRAM_CHAT_ID in _PLACEHOLDERS:
            raise ConfigError("TELEGRAM_CHAT_ID is not configured")

        intervals = {
            'CPU_STEAL_INTERVAL': self.CPU_STEAL_INTERVAL,
            'CPU_BENCH_INTERVAL': self.CPU_BENCH_INTERVAL,
            'IO_TEST_INTERVAL': self.IO_TEST_INTERVAL,
        }
        for name, raw in intervals.items():
            try:
                seconds = parse_duration(raw)
            except ValueError:
                raise ConfigError(f"{name} is not a valid duration: {raw}")
            if seconds <= 0:
                raise ConfigError(f"{name} must be positive: {raw}")

        if self.IO_TEST_SIZE_MB <= 0:
            raise ConfigError(f"IO_TEST_SIZE_MB must be positive: {self.IO_TEST_SIZE_MB}")
        if self.RETENTION_DAYS <= 0:
            raise ConfigError(f"RETENTION_DAYS must be positive: {self.RETENTION_DAYS}")

        if self.REPORT_DAILY or self.REPORT_WEEKLY or self.REPORT_MONTHLY:
            if not re.fullmatch(r'([01]\d|2[0-3]):[0-5]\d', self.REPORT_DAILY_TIME or ''):
                raise ConfigError(f"REPORT_DAILY_TIME must be HH:MM: {self.REPORT_DAILY_TIME}")
        if not 0 <= self.REPORT_WEEKLY_DAY <= 6:
            raise ConfigError(f"REPORT_WEEKLY_DAY must be 0-6: {self.REPORT_WEEKLY_DAY}")
        if not 1 <= self.REPORT_MONTHLY_DAY <= 28:
            raise ConfigError(f"REPORT_MONTHLY_DAY must be 1-28: {self.REPORT_MONTHLY_DAY}")

        if self.AI_ENABLED and self.AI_API_KEY in _PLACEHOLDERS:
            raise ConfigError("AI_ENABLED is set but AI_API_KEY is not configured")


settings = Settings()
