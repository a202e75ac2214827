"""Read and export pipelines: resolve -> compile -> materialize -> format."""
import datetime as dt
from dataclasses import dataclass

from loguru import logger

from sensorlogs.db.repository import ReadingStore, Reading
from sensorlogs.envelope import Envelope, build_envelope
from sensorlogs.errors import ValidationError
from sensorlogs.export.pivot import parse_sensor_meta, pivot_readings, sensor_labels
from sensorlogs.export.serialize import SINKS, build_table, report_filename
from sensorlogs.query.compiler import compile_export_query, compile_query
from sensorlogs.query.params import QueryRequest, parse_month_number, parse_year, split_list
from sensorlogs.query.resolver import resolve_mode
from sensorlogs.query.zones import resolve_zone


def read_sensor_data(req: QueryRequest, store: ReadingStore, now: dt.datetime | None = None) -> Envelope:
    mode = resolve_mode(req)
    compiled = compile_query(mode, req, now=now)
    records = store.fetch(compiled.descriptor)
    if compiled.descriptor.reverse_after_fetch:
        # fetched newest first so LIMIT keeps recent buckets; callers get oldest first
        records = list(reversed(records))
    logger.info("device={} mode={} filter={} rows={}", req.device_id, mode.value, compiled.filter, len(records))
    return build_envelope(compiled, req, records)


@dataclass(frozen=True)
class ExportRequest:
    device_id: str
    month: int
    year: int
    sensors: tuple[str, ...]
    labels: dict[str, str]
    zone_label: str
    out: str
    # as sent, for the filename
    month_token: str
    year_token: str


OUTPUT_FORMATS = ("excel", "csv")

def parse_export_request(
    device_id: str | None,
    bulan: str | None,
    tahun: str | None,
    sensors: str | None,
    sensor_meta: str | None = None,
    zonawaktu: str | None = None,
    out: str | None = None,
) -> ExportRequest:
    zone = resolve_zone(zonawaktu)
    out = (out or "excel").strip().lower()
    if out not in OUTPUT_FORMATS:
        raise ValidationError("out harus excel atau csv")
    if not (device_id and device_id.strip() and bulan and bulan.strip()
            and tahun and tahun.strip() and split_list(sensors)):
        raise ValidationError("device_id, bulan, tahun, sensors wajib diisi")
    try:
        month = parse_month_number(bulan)
        year = parse_year(tahun, default=0)
    except ValidationError as e:
        raise ValidationError("format bulan/tahun salah") from e
    return ExportRequest(
        device_id=device_id.strip(),
        month=month,
        year=year,
        sensors=split_list(sensors),
        labels=parse_sensor_meta(sensor_meta),
        zone_label=zone.label,
        out=out,
        month_token=bulan.strip(),
        year_token=tahun.strip(),
    )


@dataclass(frozen=True)
class ExportFile:
    filename: str
    media_type: str
    content: bytes
    rows: int


def export_report(req: ExportRequest, store: ReadingStore) -> ExportFile:
    """Pivot a device's month of readings and render it with the requested sink."""
    zone = resolve_zone(req.zone_label)
    descriptor = compile_export_query(req.device_id, req.sensors, req.year, req.month, zone)
    readings = [r for r in store.fetch(descriptor) if isinstance(r, Reading)]
    pivoted = pivot_readings(readings, zone)
    table = build_table(pivoted, req.sensors, sensor_labels(req.sensors, req.labels), zone.label)
    sink = SINKS[req.out]
    content = sink.render(table)
    logger.info("Export device={} {}-{} sensors={} rows={} out={}",
                req.device_id, req.year, req.month, ",".join(req.sensors), len(pivoted), req.out)
    return ExportFile(
        filename=report_filename(req.month_token, req.year_token, zone.label, sink),
        media_type=sink.media_type,
        content=content,
        rows=len(pivoted),
    )
