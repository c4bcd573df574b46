import pytest

from stealwatch.core.config import Settings, parse_duration
from stealwatch.core.exceptions import ConfigError


@pytest.mark.parametrize("text,seconds", [
    ('5m', 300), ('30s', 30), ('1h', 3600), ('1h30m', 5400), ('250ms', 0.25), ('1.5m', 90),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ['', '5', 'm5', '5 m', '5d', 'abc'])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


@pytest.fixture
def valid():
    s = Settings()
    s.TELEGRAM_BOT_TOKEN = '123456:abc'
    s.TELEGRAM_CHAT_ID = '-1001'
    s.CPU_STEAL_INTERVAL = '5m'
    s.CPU_BENCH_INTERVAL = '30m'
    s.IO_TEST_INTERVAL = '15m'
    s.IO_TEST_SIZE_MB = 4
    s.RETENTION_DAYS = 30
    s.REPORT_DAILY = True
    s.REPORT_DAILY_TIME = '09:00'
    s.REPORT_WEEKLY_DAY = 0
    s.REPORT_MONTHLY_DAY = 1
    s.AI_ENABLED = False
    s.AI_API_KEY = ''
    return s


def test_valid_settings(valid):
    valid.validate()
    assert valid.cpu_steal_interval == 300
    assert valid.io_test_interval == 900


@pytest.mark.parametrize("field,value", [
    ('TELEGRAM_BOT_TOKEN', ''),
    ('TELEGRAM_BOT_TOKEN', 'YOUR_BOT_TOKEN'),
    ('TELEGRAM_CHAT_ID', ''),
    ('CPU_STEAL_INTERVAL', 'often'),
    ('IO_TEST_INTERVAL', '0s'),
    ('IO_TEST_SIZE_MB', 0),
    ('RETENTION_DAYS', -1),
    ('REPORT_DAILY_TIME', '9am'),
    ('REPORT_DAILY_TIME', '24:00'),
    ('REPORT_WEEKLY_DAY', 7),
    ('REPORT_MONTHLY_DAY', 31),
])
def test_invalid_settings(valid, field, value):
    setattr(valid, field, value)
    with pytest.raises(ConfigError):
        valid.validate()


def test_ai_requires_key(valid):
    valid.AI_ENABLED = True
    with pytest.raises(ConfigError):
        valid.validate()
    valid.AI_API_KEY = 'sk-test'
    valid.validate()
