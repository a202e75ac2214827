"""Uniform response envelope for the flat (non-export) read modes."""
from typing import Any, Sequence

from pydantic import BaseModel

from sensorlogs.db.repository import AggregateRow, Reading, Record
from sensorlogs.query.compiler import CompiledQuery
from sensorlogs.query.params import QueryRequest
from sensorlogs.query.zones import DisplayZone, format_bucket

NO_DATA_MESSAGE = "Tidak ada data ditemukan"


class Envelope(BaseModel):
    status: bool
    filter: str | None = None
    mode: str | None = None
    timezone: str | None = None
    device_id: str | None = None
    month: str | None = None
    year: str | None = None
    time_range: str | None = None
    value: str | None = None
    limit: int | None = None
    total: int
    data: list[dict[str, Any]] | dict[str, Any] | None
    message: str | None = None


def serialize_record(record: Record, zone: DisplayZone) -> dict[str, Any]:
    if isinstance(record, Reading):
        recorded_at = zone.format(record.recorded_at)
    elif isinstance(record, AggregateRow):
        recorded_at = format_bucket(record.bucket)
    else:
        raise TypeError(f"Unsupported record type: {type(record).__name__}")
    return {
        "id": record.id,
        "device_unique_id": record.device_id,
        "parameter_name": record.parameter_name,
        "value": record.value,
        "recorded_at": recorded_at,
    }


def _total(data) -> int:
    if data is None:
        return 0
    if isinstance(data, dict):
        return 1
    return len(data)


def build_envelope(compiled: CompiledQuery, req: QueryRequest, records: Sequence[Record]) -> Envelope:
    """Wrap query results. An empty result is `status=false` with a message, not an error."""
    zone = req.zone
    items = [serialize_record(r, zone) for r in records]
    if compiled.single:
        data: list[dict[str, Any]] | dict[str, Any] = items[0] if items else []
    else:
        data = items

    return Envelope(
        status=bool(items),
        filter=compiled.filter,
        mode=compiled.mode_label,
        timezone=zone.label,
        device_id=req.device_id,
        month=f"{compiled.month:02d}" if compiled.month is not None else None,
        year=str(compiled.year) if compiled.year is not None else None,
        time_range=compiled.time_range,
        value=req.value_token if compiled.mode_label == "aggregate" else None,
        limit=compiled.limit,
        total=_total(data),
        data=data,
        message=None if items else NO_DATA_MESSAGE,
    )


def error_envelope(message: str) -> Envelope:
    return Envelope(status=False, total=0, data=[], message=message)
