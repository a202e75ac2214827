"""Long (time, parameter, value) readings to wide rows keyed by display time."""
import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Iterable

from loguru import logger

from sensorlogs.db.repository import Reading
from sensorlogs.query.zones import DisplayZone

# rendered for a requested sensor with no reading at a timestamp
MISSING_VALUE = 0.0


@dataclass
class PivotRow:
    time_key: str
    # display-zone instant of the first reading that created the row
    instant: dt.datetime
    values: dict[str, float] = field(default_factory=dict)


def pivot_readings(readings: Iterable[Reading], zone: DisplayZone) -> list[PivotRow]:
    """Group readings by display-zone second.

    Readings that render to the same key share one row; a later reading of the
    same parameter overwrites the earlier one. Rows come back sorted by time.
    """
    rows: list[PivotRow] = []
    by_key: dict[str, PivotRow] = {}
    for r in readings:
        key = zone.format(r.recorded_at)
        row = by_key.get(key)
        if row is None:
            row = PivotRow(time_key=key, instant=zone.to_display(r.recorded_at))
            by_key[key] = row
            rows.append(row)
        elif r.parameter_name in row.values:
            logger.debug("Pivot key {} already holds {}; keeping the later value", key, r.parameter_name)
        row.values[r.parameter_name] = r.value
    # stable: equal instants keep first-seen order
    rows.sort(key=lambda row: row.instant)
    return rows


def row_values(row: PivotRow, sensors: Iterable[str]) -> list[float]:
    """One value per requested sensor, in request order, zero when absent."""
    return [row.values.get(s, MISSING_VALUE) for s in sensors]


def format_value(value: float | str) -> str:
    """Shortest decimal rendering: 12.370000 -> "12.37", 21.6 -> "21.6", 0.0 -> "0".

    Strings are parsed as decimals, so an already-minimal string is returned as is.
    """
    try:
        d = Decimal(value) if isinstance(value, str) else Decimal(repr(float(value)))
    except InvalidOperation as e:
        raise ValueError(f"not a number: {value!r}") from e
    if not d.is_finite():
        return str(d)
    s = format(d, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    if s in ("-0", ""):
        s = "0"
    return s


def parse_sensor_meta(meta: str | None) -> dict[str, str]:
    """`su:Suhu Udara (°C),ku:Kelembapan (%)` -> {"su": "Suhu Udara (°C)", ...}."""
    result: dict[str, str] = {}
    if not meta:
        return result
    for item in meta.split(","):
        code, sep, label = item.partition(":")
        if sep:
            result[code.strip()] = label
    return result


def sensor_labels(sensors: Iterable[str], meta: dict[str, str]) -> list[str]:
    return [meta.get(s, s.upper()) for s in sensors]
