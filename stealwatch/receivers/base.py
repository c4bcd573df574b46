from abc import ABC, abstractmethod

from stealwatch.models.stats import PeriodStats


class BaseReceiver(ABC):
    @abstractmethod
    def send_report(self, stats: PeriodStats, narrative: str = '') -> None:
        """Deliver one report; raise DeliveryError when it cannot be sent."""

    @abstractmethod
    def test_connection(self) -> None:
        pass
