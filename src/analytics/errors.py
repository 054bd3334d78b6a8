"""Exception types raised by the counter analytics engine.

Lookup failures propagate to callers as validation errors. Parse and
upstream failures are caught close to where they happen so a single bad
reading or device never aborts a whole aggregation.
"""


class AnalyticsError(Exception):
    """Base class for all counter analytics errors."""


class CounterNotFoundError(AnalyticsError, LookupError):
    """Raised when a counter code is not present in the registry."""

    def __init__(self, counter_code: str) -> None:
        super().__init__(f"Counter not found: {counter_code}")
        self.counter_code = counter_code


class DeviceNotFoundError(AnalyticsError, LookupError):
    """Raised when a device id is not assigned to any registered counter."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device not found: {device_id}")
        self.device_id = device_id


class ReadingParseError(AnalyticsError, ValueError):
    """Raised when a raw telemetry payload cannot be decoded into a Reading."""


class UpstreamUnavailableError(AnalyticsError):
    """Raised when the telemetry service cannot be reached or answers badly.

    Args:
        message: Human-readable description of the failure.
        url: The request URL, if known.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url
