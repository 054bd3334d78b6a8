"""Click CLI for counter analytics reports.

Commands:
- ``trends``: Cumulative interval trend of a counter.
- ``history``: Calendar rollup (hour / day / week / month) of a counter.
- ``compare``: Rank several counters by average, peak or minimum load.
- ``summary``: Statistics of every active counter.
- ``performance``: Hour-of-day pattern with peak and low hours.
- ``kpis``: Headline figures since midnight.
- ``footfall``: Footfall against yesterday, last week, month and year.
- ``footfall-wait``: Hourly footfall against wait time for one day.
- ``periods``: Daily / weekly / monthly totals from upstream aggregates.
- ``live``: Current occupancy, queue and wait time of counters or one device.
- ``poll``: Print recent readings as they arrive.
"""

import dataclasses
import json
import logging
import time
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import click
import pandas as pd

from src.analytics.errors import AnalyticsError
from src.analytics.service import CounterAnalyticsService
from src.telemetry.client import TelemetryClient
from src.telemetry.poller import RecentReadingsPoller
from src.utils.config import AppConfig, load_config, load_counters
from src.utils.logger import setup_logger

logger = logging.getLogger(__name__)

DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _plain_dict(items: list[tuple[str, Any]]) -> dict:
    return {k: v.value if isinstance(v, Enum) else v for k, v in items}


def to_plain(value: Any) -> Any:
    """Convert result dataclasses into JSON-ready dicts and lists."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value, dict_factory=_plain_dict)
    if isinstance(value, list):
        return [to_plain(v) for v in value]
    return value


def emit(data: Any, fmt: str, output: Optional[str], rows: Optional[list] = None) -> None:
    """Write a result as JSON, or its tabular part as CSV.

    Args:
        data: Result to serialise as JSON.
        fmt: ``json`` or ``csv``.
        output: File path; stdout when None.
        rows: Row records for CSV output. Nested fields are flattened.
    """
    if fmt == "csv":
        records = to_plain(rows if rows is not None else data)
        if isinstance(records, dict):
            records = [records]
        df = pd.json_normalize(records) if records else pd.DataFrame()
        text = df.to_csv(index=False)
    else:
        text = json.dumps(to_plain(data), indent=2, default=_json_default)

    if output:
        Path(output).write_text(text)
        click.echo(f"Report saved to: {output}")
    else:
        click.echo(text)


def _range(start: Optional[datetime], end: Optional[datetime]) -> tuple[datetime, datetime]:
    end = end or datetime.now()
    start = start or end - timedelta(days=1)
    if start > end:
        raise click.BadParameter("--start must not be after --end")
    return start, end


class AppContext:
    """Lazily builds the analytics service from the loaded configuration."""

    def __init__(self, config: AppConfig, counters_path: Optional[str], base_url: Optional[str]):
        self.config = config
        self.counters_path = counters_path or config.counters_file
        self.base_url = base_url or config.telemetry.base_url
        self._client: Optional[TelemetryClient] = None
        self._service: Optional[CounterAnalyticsService] = None

    @property
    def client(self) -> TelemetryClient:
        if self._client is None:
            telemetry = self.config.telemetry
            self._client = TelemetryClient(
                self.base_url,
                api_prefix=telemetry.api_prefix,
                timeout=telemetry.timeout_seconds,
            )
        return self._client

    @property
    def service(self) -> CounterAnalyticsService:
        if self._service is None:
            registry = load_counters(self.counters_path)
            self._service = CounterAnalyticsService(
                self.client,
                registry,
                self.config.analytics,
                max_workers=self.config.telemetry.max_workers,
            )
        return self._service


def _run(app: AppContext, operation: str, *args, **kwargs):
    """Call a service operation, turning lookup and input errors into exit 1."""
    try:
        return getattr(app.service, operation)(*args, **kwargs)
    except (AnalyticsError, ValueError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)


output_option = click.option(
    "--output", "-o", type=click.Path(), help="Output file path"
)
format_option = click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["json", "csv"]),
    default="json",
    help="Output format",
)
start_option = click.option(
    "--start", type=click.DateTime(DATETIME_FORMATS), help="Range start (default: 24h ago)"
)
end_option = click.option(
    "--end", type=click.DateTime(DATETIME_FORMATS), help="Range end (default: now)"
)


@click.group()
@click.version_option(version="1.0.0")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True),
    help="Application configuration YAML",
)
@click.option(
    "--counters",
    "counters_path",
    type=click.Path(),
    help="Counter registry YAML (overrides counters_file from config)",
)
@click.option("--base-url", help="Telemetry service base URL")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[str],
    counters_path: Optional[str],
    base_url: Optional[str],
    verbose: bool,
) -> None:
    """Counter Analytics CLI - Queue and footfall analytics from device telemetry."""
    config = load_config(config_path) if config_path else AppConfig()
    setup_logger(
        "src",
        log_file=config.logging.file,
        level="DEBUG" if verbose else config.logging.level,
    )
    ctx.obj = AppContext(config, counters_path, base_url)


@cli.command()
@click.argument("counter_code")
@start_option
@end_option
@click.option("--interval", "-i", help="15min, 30min, 1hour, 4hour or 1day")
@format_option
@output_option
@click.pass_obj
def trends(
    app: AppContext,
    counter_code: str,
    start: Optional[datetime],
    end: Optional[datetime],
    interval: Optional[str],
    fmt: str,
    output: Optional[str],
) -> None:
    """Cumulative queue trend of a counter.

    Example:
        counter-analytics trends CTR-1 --start 2024-01-15 --interval 15min
    """
    start, end = _range(start, end)
    result = _run(app, "queue_trends", counter_code, start, end, interval)
    emit(result, fmt, output, rows=result.trends)


@cli.command()
@click.argument("counter_code")
@start_option
@end_option
@click.option("--granularity", "-g", help="hour, day, week or month")
@format_option
@output_option
@click.pass_obj
def history(
    app: AppContext,
    counter_code: str,
    start: Optional[datetime],
    end: Optional[datetime],
    granularity: Optional[str],
    fmt: str,
    output: Optional[str],
) -> None:
    """Historical rollup of a counter by calendar unit.

    Example:
        counter-analytics history CTR-1 --start 2024-01-01 -g week
    """
    start, end = _range(start, end)
    result = _run(app, "historical_trends", counter_code, start, end, granularity)
    emit(result, fmt, output, rows=result.points)


@cli.command()
@click.argument("counter_codes", nargs=-1, required=True)
@start_option
@end_option
@click.option(
    "--filter",
    "filter_type",
    type=click.Choice(["average", "max", "min"]),
    default="average",
    help="Statistic used to rank counters",
)
@format_option
@output_option
@click.pass_obj
def compare(
    app: AppContext,
    counter_codes: tuple[str, ...],
    start: Optional[datetime],
    end: Optional[datetime],
    filter_type: str,
    fmt: str,
    output: Optional[str],
) -> None:
    """Compare counters, best (lowest) first.

    Example:
        counter-analytics compare CTR-1 CTR-2 --filter max
    """
    start, end = _range(start, end)
    result = _run(app, "compare_counters", list(counter_codes), start, end, filter_type)
    data = to_plain(result)
    if result.best is not None:
        data["insights"] = {
            "best_performing": result.best.counter_code,
            "worst_performing": result.worst.counter_code,
        }
    emit(data, fmt, output, rows=result.comparisons)


@cli.command()
@start_option
@end_option
@format_option
@output_option
@click.pass_obj
def summary(
    app: AppContext,
    start: Optional[datetime],
    end: Optional[datetime],
    fmt: str,
    output: Optional[str],
) -> None:
    """Statistics of every active counter, ordered by average load."""
    start, end = _range(start, end)
    result = _run(app, "counters_summary", start, end)
    emit(result, fmt, output)


@cli.command()
@click.argument("counter_code")
@start_option
@end_option
@format_option
@output_option
@click.pass_obj
def performance(
    app: AppContext,
    counter_code: str,
    start: Optional[datetime],
    end: Optional[datetime],
    fmt: str,
    output: Optional[str],
) -> None:
    """Hour-of-day pattern of the last day with peak and low hours."""
    start, end = _range(start, end)
    result = _run(app, "performance_analysis", counter_code, start, end)
    emit(result, fmt, output, rows=result.hourly_pattern)


@cli.command()
@click.argument("counter_code")
@format_option
@output_option
@click.pass_obj
def kpis(app: AppContext, counter_code: str, fmt: str, output: Optional[str]) -> None:
    """Current day KPIs of a counter."""
    result = _run(app, "current_day_kpis", counter_code)
    emit(result, fmt, output)


@cli.command()
@click.argument("counter_codes", nargs=-1)
@click.option("--all", "all_counters", is_flag=True, help="Every active counter")
@format_option
@output_option
@click.pass_obj
def footfall(
    app: AppContext,
    counter_codes: tuple[str, ...],
    all_counters: bool,
    fmt: str,
    output: Optional[str],
) -> None:
    """Footfall of today against the same day in earlier periods.

    Example:
        counter-analytics footfall CTR-1
        counter-analytics footfall CTR-1 CTR-2
        counter-analytics footfall --all
    """
    if all_counters:
        result = _run(app, "all_counters_footfall")
        if result is None:
            click.echo("No active counters with devices", err=True)
            raise SystemExit(1)
        emit(result, fmt, output, rows=list(result.windows.values()))
    elif len(counter_codes) == 1:
        result = _run(app, "footfall_summary", counter_codes[0])
        emit(result, fmt, output, rows=list(result.summary.windows.values()))
    elif counter_codes:
        result = _run(app, "multi_counter_footfall", list(counter_codes))
        rows = list(result.combined.windows.values()) if result.combined else []
        emit(result, fmt, output, rows=rows)
    else:
        click.echo("Provide counter codes or --all", err=True)
        raise SystemExit(1)


@cli.command("footfall-wait")
@click.argument("counter_code")
@click.option("--date", "day", type=click.DateTime(["%Y-%m-%d"]), help="Day (default: today)")
@format_option
@output_option
@click.pass_obj
def footfall_wait(
    app: AppContext,
    counter_code: str,
    day: Optional[datetime],
    fmt: str,
    output: Optional[str],
) -> None:
    """Hourly footfall against wait time for one day."""
    target = day.date() if day else None
    result = _run(app, "footfall_vs_wait_time", counter_code, target)
    emit(result, fmt, output, rows=result.analysis.hourly)


@cli.command()
@click.argument("counter_code")
@click.option(
    "--period",
    "-p",
    type=click.Choice(["daily", "weekly", "monthly"]),
    default="daily",
    help="Period type",
)
@start_option
@end_option
@format_option
@output_option
@click.pass_obj
def periods(
    app: AppContext,
    counter_code: str,
    period: str,
    start: Optional[datetime],
    end: Optional[datetime],
    fmt: str,
    output: Optional[str],
) -> None:
    """Period totals from the upstream hourly aggregates."""
    start, end = _range(start, end)
    result = _run(app, "period_trends", counter_code, period, start, end)
    emit(result, fmt, output, rows=result.totals)


@cli.command()
@click.argument("counter_codes", nargs=-1)
@click.option("--device", "device_id", help="Status of a single device")
@format_option
@output_option
@click.pass_obj
def live(
    app: AppContext,
    counter_codes: tuple[str, ...],
    device_id: Optional[str],
    fmt: str,
    output: Optional[str],
) -> None:
    """Current occupancy, queue length and wait time.

    Example:
        counter-analytics live
        counter-analytics live CTR-1 CTR-2
        counter-analytics live --device sensor-001
    """
    if device_id:
        result = _run(app, "device_status", device_id)
        emit(result, fmt, output, rows=[result.device])
        return

    result = _run(app, "live_status", list(counter_codes) or None)
    rows = [
        {k: v for k, v in dataclasses.asdict(counter).items() if k != "devices"}
        for counter in result.counters
    ]
    emit(result, fmt, output, rows=rows)


@cli.command()
@click.option("--device", "devices", multiple=True, help="Only this device (repeatable)")
@click.option("--counter", "counters", multiple=True, help="Only this counter name (repeatable)")
@click.option("--interval", type=float, help="Seconds between polls")
@click.option("--limit", type=int, help="Readings requested per poll")
@click.option("--once", is_flag=True, help="Poll a single time and exit")
@click.pass_obj
def poll(
    app: AppContext,
    devices: tuple[str, ...],
    counters: tuple[str, ...],
    interval: Optional[float],
    limit: Optional[int],
    once: bool,
) -> None:
    """Print recent readings as JSON lines."""
    settings = app.config.polling
    poller = RecentReadingsPoller(
        app.client,
        interval_seconds=interval if interval is not None else settings.interval_seconds,
        limit=limit if limit is not None else settings.limit,
    )

    def echo_reading(reading) -> None:
        record = {"deviceId": reading.device_id, **reading.raw_fields}
        record["timestamp"] = reading.timestamp.isoformat()
        click.echo(json.dumps(record, default=_json_default))

    for device_id in devices:
        poller.subscribe_device(device_id, echo_reading)
    for name in counters:
        poller.subscribe_counter(name, echo_reading)
    if not devices and not counters:
        poller.subscribe_all(echo_reading)

    if once:
        poller.poll_once()
        return

    poller.start()
    try:
        while poller.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        click.echo("Stopping poller...", err=True)
    finally:
        poller.stop()


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
