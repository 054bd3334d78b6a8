"""Tests for the Reading schema and decode step."""

import json
from datetime import datetime

import pytest

from src.analytics.errors import ReadingParseError
from src.analytics.readings import (
    Reading,
    decode_reading,
    decode_readings,
    filter_range,
    parse_timestamp,
    to_float,
)


def _reading(ts: datetime, **fields) -> Reading:
    return Reading(device_id="d1", timestamp=ts, raw_fields=fields)


class TestToFloat:
    """Tests for loose numeric coercion."""

    def test_numbers(self) -> None:
        """Ints and floats convert to float."""
        assert to_float(4) == 4.0
        assert to_float(2.5) == 2.5

    def test_numeric_string(self) -> None:
        """Numeric strings are parsed."""
        assert to_float(" 3.5 ") == 3.5

    def test_rejected_values(self) -> None:
        """Booleans, None, NaN and garbage are rejected."""
        assert to_float(True) is None
        assert to_float(None) is None
        assert to_float("abc") is None
        assert to_float(float("nan")) is None
        assert to_float([1]) is None

    def test_non_finite_rejected(self) -> None:
        """Infinities from overflowing strings or JSON literals are rejected."""
        assert to_float("1e309") is None
        assert to_float("-Infinity") is None
        assert to_float(float("inf")) is None
        assert to_float(float("-inf")) is None
        assert to_float(json.loads('{"inCount": Infinity}')["inCount"]) is None

    def test_non_finite_payload_has_no_count(self) -> None:
        """A decoded reading with an infinite count exposes no usable value."""
        payload = json.loads(
            '{"deviceId": "d1", "timestamp": "2024-01-15T10:00:00", "inCount": Infinity}'
        )
        assert decode_reading(payload).in_count is None


class TestParseTimestamp:
    """Tests for ISO-8601 timestamp parsing."""

    def test_naive(self) -> None:
        """Plain ISO timestamps parse to naive datetimes."""
        assert parse_timestamp("2024-01-15T10:05:00") == datetime(2024, 1, 15, 10, 5)

    def test_trailing_z(self) -> None:
        """A trailing Z is accepted and dropped."""
        parsed = parse_timestamp("2024-01-15T10:05:00Z")
        assert parsed == datetime(2024, 1, 15, 10, 5)
        assert parsed.tzinfo is None

    def test_offset_keeps_wall_clock(self) -> None:
        """An explicit offset is dropped, keeping the wall-clock fields."""
        assert parse_timestamp("2024-01-15T10:05:00+05:30") == datetime(2024, 1, 15, 10, 5)

    def test_datetime_passthrough(self) -> None:
        """Datetime values are returned without tzinfo."""
        value = datetime(2024, 1, 15, 10, 5)
        assert parse_timestamp(value) == value

    @pytest.mark.parametrize("value", [None, "", "yesterday", 12345])
    def test_invalid(self, value) -> None:
        """Invalid timestamps raise ReadingParseError."""
        with pytest.raises(ReadingParseError):
            parse_timestamp(value)


class TestDecodeReading:
    """Tests for decode_reading."""

    def test_decode_valid(self) -> None:
        """A complete payload decodes into a Reading."""
        reading = decode_reading(
            {"deviceId": "d1", "timestamp": "2024-01-15T10:05:00", "inCount": 5}
        )
        assert reading.device_id == "d1"
        assert reading.timestamp == datetime(2024, 1, 15, 10, 5)
        assert reading.raw_fields["inCount"] == 5

    def test_device_override(self) -> None:
        """An explicit device id overrides the payload's own."""
        reading = decode_reading(
            {"deviceId": "other", "timestamp": "2024-01-15T10:05:00"}, device_id="d2"
        )
        assert reading.device_id == "d2"
        assert reading.raw_fields["deviceId"] == "d2"

    def test_device_from_override_only(self) -> None:
        """The override supplies a device id missing from the payload."""
        reading = decode_reading({"timestamp": "2024-01-15T10:05:00"}, device_id="d3")
        assert reading.device_id == "d3"

    def test_missing_device(self) -> None:
        """Payload without any device id is rejected."""
        with pytest.raises(ReadingParseError, match="deviceId"):
            decode_reading({"timestamp": "2024-01-15T10:05:00"})

    def test_missing_timestamp(self) -> None:
        """Payload without a timestamp is rejected."""
        with pytest.raises(ReadingParseError, match="timestamp"):
            decode_reading({"deviceId": "d1", "inCount": 3})

    def test_not_a_mapping(self) -> None:
        """Non-object payloads are rejected."""
        with pytest.raises(ReadingParseError):
            decode_reading(["d1", "2024-01-15"])

    def test_parse_error_is_value_error(self) -> None:
        """ReadingParseError can be caught as ValueError."""
        with pytest.raises(ValueError):
            decode_reading({"deviceId": "d1", "timestamp": "bad"})


class TestDecodeReadings:
    """Tests for batch decoding."""

    def test_skips_bad_payloads(self) -> None:
        """Malformed payloads are dropped, valid ones kept in order."""
        payloads = [
            {"deviceId": "d1", "timestamp": "2024-01-15T10:00:00", "inCount": 1},
            {"deviceId": "d1"},
            "garbage",
            {"deviceId": "d1", "timestamp": "2024-01-15T10:01:00", "inCount": 2},
        ]
        readings = decode_readings(payloads)
        assert [r.raw_fields["inCount"] for r in readings] == [1, 2]

    def test_empty(self) -> None:
        """Empty input gives an empty list."""
        assert decode_readings([]) == []


class TestReadingAccessors:
    """Tests for the typed optional accessors."""

    def test_accessors(self) -> None:
        """Optional fields are exposed with their types."""
        reading = _reading(
            datetime(2024, 1, 15, 10, 0),
            counterName="Checkout 1",
            waitTime="4.5",
            inCount=7,
            status="ok",
        )
        assert reading.counter_name == "Checkout 1"
        assert reading.wait_time == 4.5
        assert reading.in_count == 7.0
        assert reading.status == "ok"

    def test_missing_accessors(self) -> None:
        """Absent fields read as None."""
        reading = _reading(datetime(2024, 1, 15, 10, 0))
        assert reading.counter_name is None
        assert reading.wait_time is None
        assert reading.in_count is None
        assert reading.status is None


class TestFilterRange:
    """Tests for the inclusive time range filter."""

    def test_inclusive_bounds(self) -> None:
        """Readings exactly at start and end are kept."""
        start = datetime(2024, 1, 15, 10, 0)
        end = datetime(2024, 1, 15, 11, 0)
        readings = [
            _reading(datetime(2024, 1, 15, 9, 59)),
            _reading(start),
            _reading(datetime(2024, 1, 15, 10, 30)),
            _reading(end),
            _reading(datetime(2024, 1, 15, 11, 0, 1)),
        ]
        kept = filter_range(readings, start, end)
        assert [r.timestamp for r in kept] == [start, datetime(2024, 1, 15, 10, 30), end]
