"""Configuration management for counter analytics.

Loads YAML configuration files for the telemetry connection, analytics
defaults, the recent-readings poller, and the counter registry that maps
counters to their devices.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from src.analytics.errors import CounterNotFoundError, DeviceNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class TelemetryConfig:
    """Connection settings for the telemetry service."""

    base_url: str = "http://localhost:8080"
    api_prefix: str = "/api/mqtt-data"
    timeout_seconds: float = 10.0
    max_workers: int = 8


@dataclass
class AnalyticsConfig:
    """Defaults applied to analytics requests."""

    default_interval: str = "1hour"
    default_granularity: str = "day"
    metric_policy: str = "queue"
    bucket_policy: str = "overwrite"
    trend_min_samples: int = 10
    congestion_threshold: Optional[float] = None


@dataclass
class PollingConfig:
    """Configuration for the recent-readings poller."""

    enabled: bool = False
    interval_seconds: float = 2.0
    limit: int = 10


@dataclass
class LoggingConfig:
    """Configuration for application logging."""

    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    """Top-level application configuration."""

    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    counters_file: str = "config/counters.yaml"


@dataclass
class DeviceDefinition:
    """A device assigned to a counter."""

    device_id: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.device_id


@dataclass
class CounterDefinition:
    """A counter and the devices whose readings make it up.

    Attributes:
        code: Unique counter code used in requests.
        name: Display name.
        counter_type: Free-form category such as ``checkout``.
        upstream_name: Counter name used by the telemetry service in its
            pre-aggregated records. Defaults to ``name``.
        active: Inactive counters are left out of all-counter views.
        devices: Devices of the counter.
    """

    code: str
    name: str
    counter_type: Optional[str] = None
    upstream_name: Optional[str] = None
    active: bool = True
    devices: list[DeviceDefinition] = field(default_factory=list)

    @property
    def device_ids(self) -> list[str]:
        return [d.device_id for d in self.devices]

    @property
    def device_names(self) -> dict[str, str]:
        return {d.device_id: d.display_name for d in self.devices}

    @property
    def aggregate_name(self) -> str:
        return self.upstream_name or self.name


class CounterRegistry:
    """Lookup of counters and device membership.

    The registry is built once from configuration and handed to whatever
    needs it.

    Args:
        counters: Counter definitions. Codes must be unique.
    """

    def __init__(self, counters: list[CounterDefinition]) -> None:
        self._counters: dict[str, CounterDefinition] = {}
        for counter in counters:
            if counter.code in self._counters:
                raise ValueError(f"Duplicate counter code: {counter.code}")
            self._counters[counter.code] = counter

    def __len__(self) -> int:
        return len(self._counters)

    def __contains__(self, code: object) -> bool:
        return code in self._counters

    def get(self, code: str) -> CounterDefinition:
        """Return the counter with ``code``.

        Raises:
            CounterNotFoundError: If no counter has that code.
        """
        try:
            return self._counters[code]
        except KeyError:
            raise CounterNotFoundError(code) from None

    def all(self) -> list[CounterDefinition]:
        return list(self._counters.values())

    def active(self) -> list[CounterDefinition]:
        """Active counters in registration order."""
        return [c for c in self._counters.values() if c.active]

    def counter_for_device(self, device_id: str) -> CounterDefinition:
        """Return the counter a device belongs to.

        Raises:
            DeviceNotFoundError: If the device is not assigned to any counter.
        """
        for counter in self._counters.values():
            if device_id in counter.device_ids:
                return counter
        raise DeviceNotFoundError(device_id)


def load_config(config_path: str) -> AppConfig:
    """Load application configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Populated AppConfig instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        logger.warning("Empty config file, using defaults")
        return AppConfig()

    config = AppConfig(
        telemetry=TelemetryConfig(**(raw.get("telemetry") or {})),
        analytics=AnalyticsConfig(**(raw.get("analytics") or {})),
        polling=PollingConfig(**(raw.get("polling") or {})),
        logging=LoggingConfig(**(raw.get("logging") or {})),
        counters_file=raw.get("counters_file", AppConfig.counters_file),
    )

    logger.info("Configuration loaded from %s", config_path)
    return config


def _parse_device(device_data) -> DeviceDefinition:
    if isinstance(device_data, str):
        return DeviceDefinition(device_id=device_data)
    if not isinstance(device_data, dict) or "device_id" not in device_data:
        raise ValueError(f"Device definition missing 'device_id': {device_data}")
    return DeviceDefinition(
        device_id=str(device_data["device_id"]), name=device_data.get("name")
    )


def load_counters(counters_path: str) -> CounterRegistry:
    """Load the counter registry from a YAML file.

    Devices may be listed as plain ids or as ``{device_id, name}`` maps.

    Args:
        counters_path: Path to the counters YAML file.

    Returns:
        CounterRegistry with every defined counter.

    Raises:
        FileNotFoundError: If the counters file does not exist.
        ValueError: If the file or a counter definition is missing
            required fields.
    """
    path = Path(counters_path)
    if not path.exists():
        raise FileNotFoundError(f"Counters file not found: {counters_path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None or "counters" not in raw:
        raise ValueError(
            f"Invalid counters file: missing 'counters' key in {counters_path}"
        )

    counters = []
    for counter_data in raw["counters"]:
        if "code" not in counter_data or "devices" not in counter_data:
            raise ValueError(
                f"Counter definition missing 'code' or 'devices': {counter_data}"
            )
        code = str(counter_data["code"])
        counters.append(
            CounterDefinition(
                code=code,
                name=counter_data.get("name", code),
                counter_type=counter_data.get("type"),
                upstream_name=counter_data.get("upstream_name"),
                active=bool(counter_data.get("active", True)),
                devices=[_parse_device(d) for d in counter_data["devices"] or []],
            )
        )

    logger.info("Loaded %d counters from %s", len(counters), counters_path)
    return CounterRegistry(counters)
