from .manager import ReportManager
from .telegram import TelegramReceiver
