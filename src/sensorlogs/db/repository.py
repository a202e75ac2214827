"""Result materialization against the sensor_logs store."""
import datetime as dt
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, TypeVar

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from sensorlogs.errors import UpstreamStoreError
from sensorlogs.query.compiler import AGGREGATE_SHAPES, QueryDescriptor, Shape, build_statement
from sensorlogs.query.zones import as_reference


@dataclass(frozen=True)
class Reading:
    id: int
    device_id: str
    parameter_name: str
    value: float
    # reference zone, naive
    recorded_at: dt.datetime


@dataclass(frozen=True)
class AggregateRow:
    # already in the display zone: an instant, an hour, or a calendar date
    bucket: dt.datetime | dt.date
    device_id: str
    parameter_name: str
    value: float
    id: int


Record = Reading | AggregateRow


class ReadingStore(Protocol):
    def fetch(self, descriptor: QueryDescriptor) -> list[Record]:
        ...


T = TypeVar("T")

def skip_unscannable(rows: Iterable[Any], scan: Callable[[Any], T]) -> list[T]:
    """Best-effort scan: a row that cannot be converted is logged and dropped.

    One corrupt row never aborts the result; the rest is still returned.
    """
    out: list[T] = []
    skipped = 0
    for row in rows:
        try:
            out.append(scan(row))
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            skipped += 1
            logger.warning("Skipping unscannable row {}: {}", dict(row) if hasattr(row, "keys") else row, e)
    if skipped:
        logger.info("skip_unscannable: scanned={} skipped={}", len(out), skipped)
    return out


def scan_reading(row) -> Reading:
    return Reading(
        id=int(row["id"]),
        device_id=str(row["device_unique_id"]),
        parameter_name=str(row["parameter_name"]),
        value=float(row["value"]),
        recorded_at=as_reference(row["recorded_at"]),
    )

def scan_aggregate(row) -> AggregateRow:
    bucket = row["bucket"]
    if not isinstance(bucket, (dt.datetime, dt.date)):
        raise TypeError(f"bucket is not a date/time: {bucket!r}")
    return AggregateRow(
        bucket=bucket,
        device_id=str(row["device_unique_id"]),
        parameter_name=str(row["parameter_name"]),
        value=float(row["value"]),
        id=int(row["id"]),
    )

def extreme_scanner(offset_hours: int) -> Callable[[Any], AggregateRow]:
    """The max/min row itself, reported at its display-zone instant."""
    shift = dt.timedelta(hours=offset_hours)

    def scan(row) -> AggregateRow:
        return AggregateRow(
            bucket=as_reference(row["recorded_at"]) + shift,
            device_id=str(row["device_unique_id"]),
            parameter_name=str(row["parameter_name"]),
            value=round(float(row["value"]), 2),
            id=int(row["id"]),
        )
    return scan

def scanner_for(descriptor: QueryDescriptor) -> Callable[[Any], Record]:
    if descriptor.shape is Shape.EXTREME:
        return extreme_scanner(descriptor.offset_hours)
    if descriptor.shape in AGGREGATE_SHAPES:
        return scan_aggregate
    return scan_reading


class SqlReadingStore:
    """ReadingStore over a SQLAlchemy session factory."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def fetch(self, descriptor: QueryDescriptor) -> list[Record]:
        stmt = build_statement(descriptor)
        try:
            with self.session_factory() as s:
                rows = s.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            # surface the driver's own message, no retry
            message = str(getattr(e, "orig", None) or e)
            logger.error("Query on {} failed (shape={}): {}", descriptor.table, descriptor.shape.value, message)
            raise UpstreamStoreError(message) from e
        logger.debug("Fetched {} rows (shape={})", len(rows), descriptor.shape.value)
        return skip_unscannable(rows, scanner_for(descriptor))
