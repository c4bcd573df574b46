class StealwatchError(Exception):
    pass


class CollectError(StealwatchError):
    """A probe could not read or parse its kernel source, or its test I/O failed."""


class StorageError(StealwatchError):
    """A write or query against the metric store failed."""


class ConfigError(StealwatchError):
    pass


class DeliveryError(StealwatchError):
    """A report could not be delivered after all retries."""


class LLMError(StealwatchError):
    pass
