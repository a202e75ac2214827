"""Request parameter parsing into a QueryRequest."""
import datetime as dt
from dataclasses import dataclass, field

from loguru import logger

from sensorlogs.errors import ValidationError
from sensorlogs.query.zones import DisplayZone, reference_now, resolve_zone

PERIOD_DAY = "day"
PERIOD_WEEK = "week"
PERIOD_MONTH = "month"
PERIOD_NOW = "now"

MODE_RAW = "raw"
MODE_ROLLUP = "rollup"
MODE_LATEST = "latest"

VALUE_NONE = "none"
VALUE_MAX = "max"
VALUE_MIN = "min"
VALUE_AVG = "avg"

# wire tokens (Indonesian and English) -> canonical tokens
PERIOD_ALIASES = {
    "hari": PERIOD_DAY,
    "day": PERIOD_DAY,
    "minggu_ini": PERIOD_WEEK,
    "week": PERIOD_WEEK,
    "week-to-date": PERIOD_WEEK,
    "bulan": PERIOD_MONTH,
    "month": PERIOD_MONTH,
    "now": PERIOD_NOW,
}
MODE_ALIASES = {
    "raw": MODE_RAW,
    "ringkas": MODE_ROLLUP,
    "rollup": MODE_ROLLUP,
    "latest": MODE_LATEST,
}
VALUE_ALIASES = {
    "high": VALUE_MAX,
    "max": VALUE_MAX,
    "low": VALUE_MIN,
    "min": VALUE_MIN,
    "avg": VALUE_AVG,
}

KNOWN_PERIODS = frozenset(PERIOD_ALIASES.values())
KNOWN_MODES = frozenset(MODE_ALIASES.values())
KNOWN_VALUES = frozenset(VALUE_ALIASES.values())


@dataclass(frozen=True)
class QueryRequest:
    """Validated view of the read endpoint parameters.

    Unknown period/mode/value tokens are kept lowercased; the compiler rejects
    them once a strategy that needs them has been chosen.
    """

    device_id: str
    device_ids: tuple[str, ...]
    parameters: tuple[str, ...] = ()
    period: str = PERIOD_DAY
    mode: str = MODE_RAW
    value_aggregate: str = VALUE_NONE
    # raw `value` token as sent (high/low/avg), echoed in the envelope
    value_token: str | None = None
    date: dt.date | None = None
    month: int | None = None
    year: int | None = None
    zone: DisplayZone = field(default_factory=lambda: resolve_zone(None))
    limit: int = 0

    @property
    def jenis(self) -> str:
        return ",".join(self.parameters)

    @property
    def has_parameter_list(self) -> bool:
        return len(self.parameters) > 1

    @property
    def has_device_list(self) -> bool:
        return len(self.device_ids) > 1


def split_list(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def parse_year(raw: str | None, default: int) -> int:
    if raw is None or not str(raw).strip():
        return default
    s = str(raw).strip()
    if not (s.isdigit() and len(s) == 4):
        raise ValidationError(f"tahun tidak valid: {raw}")
    return int(s)


def parse_month_number(raw: str) -> int:
    s = raw.strip()
    if not s.isdigit() or not 1 <= int(s) <= 12:
        raise ValidationError(f"bulan tidak valid: {raw}")
    return int(s)


def parse_month(bulan: str, default_year: int) -> tuple[int, int]:
    """Parse `bulan` as MM, MM-YYYY or MM-DD-YYYY into (month, year).

    The day part of MM-DD-YYYY is ignored; a bare MM takes `default_year`.
    """
    parts = bulan.strip().split("-")
    if len(parts) == 1:
        return parse_month_number(parts[0]), default_year
    if len(parts) == 2:
        return parse_month_number(parts[0]), parse_year(parts[1], default_year)
    if len(parts) == 3:
        return parse_month_number(parts[0]), parse_year(parts[2], default_year)
    raise ValidationError(f"bulan tidak valid: {bulan}")


def parse_date(tanggal: str) -> dt.date:
    try:
        return dt.datetime.strptime(tanggal.strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise ValidationError(f"tanggal tidak valid: {tanggal}") from e


def parse_limit(raw: str | int | None) -> int:
    """A positive integer, or 0 (no caller limit). Anything else is ignored."""
    if raw is None or raw == "":
        return 0
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-numeric limit {!r}", raw)
        return 0
    return limit if limit > 0 else 0


def _canonical(raw: str | None, aliases: dict[str, str], default: str) -> str:
    if raw is None or not raw.strip():
        return default
    token = raw.strip().lower()
    return aliases.get(token, token)


def parse_query_request(
    device_id: str | None,
    jenis: str | None = None,
    periode: str | None = None,
    mode: str | None = None,
    tahun: str | None = None,
    bulan: str | None = None,
    tanggal: str | None = None,
    value: str | None = None,
    zonawaktu: str | None = None,
    limit: str | int | None = None,
    today: dt.date | None = None,
) -> QueryRequest:
    """Validate raw query-string values. Raises ValidationError on bad input."""
    device_ids = split_list(device_id)
    if not device_ids:
        raise ValidationError("device_id wajib diisi")

    zone = resolve_zone(zonawaktu)
    today = today or reference_now().date()
    year = parse_year(tahun, today.year)
    month = None
    if bulan and bulan.strip():
        month, year = parse_month(bulan, year)

    value_token = value.strip().lower() if value and value.strip() else None

    return QueryRequest(
        device_id=device_id.strip(),
        device_ids=device_ids,
        parameters=split_list(jenis),
        period=_canonical(periode, PERIOD_ALIASES, PERIOD_DAY),
        mode=_canonical(mode, MODE_ALIASES, MODE_RAW),
        value_aggregate=_canonical(value, VALUE_ALIASES, VALUE_NONE),
        value_token=value_token,
        date=parse_date(tanggal) if tanggal and tanggal.strip() else None,
        month=month,
        year=year,
        zone=zone,
        limit=parse_limit(limit),
    )
