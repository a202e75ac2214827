"""Query compilation.

`compile_query` turns a resolved read mode and a QueryRequest into a
`QueryDescriptor`: a structured description of filters, time window,
grouping, aggregate, order and row cap. `build_statement` is the only place a
descriptor becomes SQL; every value coming from the request is a bound
parameter.

Time windows are half-open `[start, end)` ranges on the stored reference-zone
instant. Calendar windows (explicit date or month, "last N days") are laid out
in the display zone and shifted back, so the rows a query filters on are the
same rows its display-zone buckets group.
"""
import datetime as dt
from dataclasses import dataclass, field
from enum import Enum

from dateutil.relativedelta import relativedelta
from loguru import logger
from sqlalchemy import Date, Interval, Numeric, cast, func, literal_column, select
from sqlalchemy.dialects.postgresql import distinct_on
from sqlalchemy.sql import Select

from sensorlogs.config import settings
from sensorlogs.db.models import SensorLog
from sensorlogs.errors import ValidationError
from sensorlogs.query.params import (
    QueryRequest,
    KNOWN_MODES, KNOWN_VALUES,
    MODE_ROLLUP,
    PERIOD_DAY, PERIOD_WEEK, PERIOD_MONTH,
    VALUE_NONE, VALUE_MAX, VALUE_MIN, VALUE_AVG,
)
from sensorlogs.query.resolver import ReadMode
from sensorlogs.query.zones import DisplayZone, reference_now


class Shape(str, Enum):
    ROWS = "rows"
    LATEST_PER_DEVICE = "latest_per_device"
    LATEST_PER_PARAMETER = "latest_per_parameter"
    SAMPLE_PER_PARAMETER = "sample_per_parameter"
    BUCKETS = "buckets"
    SUMMARY = "summary"
    EXTREME = "extreme"


class GroupBy(str, Enum):
    NONE = "none"
    HOUR = "hour"
    DAY = "day"


class Aggregate(str, Enum):
    NONE = "none"
    MAX = "max"
    MIN = "min"
    AVG = "avg"


class Order(str, Enum):
    ASC = "asc"
    DESC = "desc"


# shapes that produce AggregateRow instead of Reading
AGGREGATE_SHAPES = frozenset({Shape.BUCKETS, Shape.SUMMARY, Shape.EXTREME})


@dataclass(frozen=True)
class TimeWindow:
    start: dt.datetime | None = None
    end: dt.datetime | None = None

    def contains(self, instant: dt.datetime) -> bool:
        if self.start is not None and instant < self.start:
            return False
        if self.end is not None and instant >= self.end:
            return False
        return True


@dataclass(frozen=True)
class QueryDescriptor:
    shape: Shape
    device_ids: tuple[str, ...]
    parameters: tuple[str, ...] = ()
    window: TimeWindow = field(default_factory=TimeWindow)
    group_by: GroupBy = GroupBy.NONE
    aggregate: Aggregate = Aggregate.NONE
    order: Order = Order.DESC
    # per parameter for SAMPLE_PER_PARAMETER
    limit: int | None = None
    offset_hours: int = 0
    reverse_after_fetch: bool = False
    table: str = SensorLog.__tablename__


@dataclass(frozen=True)
class CompiledQuery:
    """A descriptor plus what the envelope reports about it."""

    mode: ReadMode
    descriptor: QueryDescriptor
    filter: str
    mode_label: str
    single: bool = False
    time_range: str | None = None
    month: int | None = None
    year: int | None = None
    limit: int | None = None


# -------------------------
# Validation
# -------------------------
_SINGLE_AGGREGATE = {
    VALUE_MAX: Aggregate.MAX,
    VALUE_MIN: Aggregate.MIN,
    VALUE_AVG: Aggregate.AVG,
}

def _require_aggregate(req: QueryRequest) -> Aggregate:
    if req.value_aggregate not in KNOWN_VALUES:
        raise ValidationError("value hanya high | low | avg")
    return _SINGLE_AGGREGATE[req.value_aggregate]

def _require_period(req: QueryRequest) -> str:
    if req.period not in (PERIOD_DAY, PERIOD_WEEK, PERIOD_MONTH):
        raise ValidationError("periode tidak valid")
    return req.period

def _require_mode(req: QueryRequest) -> str:
    if req.mode not in KNOWN_MODES:
        raise ValidationError("mode hanya raw | ringkas | latest")
    return req.mode

def _caller_limit(req: QueryRequest) -> int | None:
    return req.limit if req.limit > 0 else None

def _value_label(req: QueryRequest) -> str:
    return req.value_token or req.value_aggregate


# -------------------------
# Windows
# -------------------------
def trailing_window(now: dt.datetime, delta: dt.timedelta) -> TimeWindow:
    return TimeWindow(start=now - delta)

def calendar_days_window(zone: DisplayZone, now: dt.datetime, days_back: int) -> TimeWindow:
    """From display-zone midnight `days_back` days ago, open ended."""
    first_day = zone.today(now) - dt.timedelta(days=days_back)
    return TimeWindow(start=zone.midnight(first_day))

def day_window(zone: DisplayZone, day: dt.date) -> TimeWindow:
    return TimeWindow(start=zone.midnight(day), end=zone.midnight(day + dt.timedelta(days=1)))

def month_window(zone: DisplayZone, year: int, month: int) -> TimeWindow:
    first = dt.date(year, month, 1)
    return TimeWindow(start=zone.midnight(first), end=zone.midnight(first + relativedelta(months=1)))

TRAILING_DAY = dt.timedelta(hours=24)
TRAILING_WEEK = dt.timedelta(days=7)
# calendar windows count today, so 7 and 30 days
WEEK_DAYS_BACK = 6
MONTH_DAYS_BACK = 29


# -------------------------
# Per-mode compilers
# -------------------------
def _compile_random_sample(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    per_parameter = _caller_limit(req) or settings.SAMPLE_LIMIT_PER_PARAMETER
    desc = QueryDescriptor(
        shape=Shape.SAMPLE_PER_PARAMETER,
        device_ids=req.device_ids,
        parameters=req.parameters,
        window=month_window(req.zone, req.year, req.month),
        order=Order.ASC,
        limit=per_parameter,
        offset_hours=req.zone.offset_hours,
    )
    return CompiledQuery(ReadMode.RANDOM_SAMPLE, desc, "multi_param_random", "random_sample",
                         month=req.month, year=req.year, limit=_caller_limit(req))

def _compile_multi_device_latest(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    desc = QueryDescriptor(
        shape=Shape.LATEST_PER_DEVICE,
        device_ids=req.device_ids,
        offset_hours=req.zone.offset_hours,
    )
    return CompiledQuery(ReadMode.MULTI_DEVICE_LATEST, desc, "multi_device_latest", "latest")

def _compile_latest(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    # across every parameter of the device; `jenis` does not narrow it
    desc = QueryDescriptor(
        shape=Shape.ROWS,
        device_ids=req.device_ids,
        limit=1,
        offset_hours=req.zone.offset_hours,
    )
    return CompiledQuery(ReadMode.LATEST, desc, "latest", "latest", single=True)

def _compile_all_parameters(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    cap = settings.ALL_PARAMETERS_LIMIT
    limit = min(req.limit, cap) if req.limit > 0 else cap
    desc = QueryDescriptor(
        shape=Shape.ROWS,
        device_ids=req.device_ids,
        window=trailing_window(now, TRAILING_DAY),
        limit=limit,
        offset_hours=req.zone.offset_hours,
    )
    return CompiledQuery(ReadMode.ALL_PARAMETERS, desc, "all_parameters", "raw",
                         time_range="24_hours", limit=_caller_limit(req))

def _compile_all_parameters_by_month(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    desc = QueryDescriptor(
        shape=Shape.ROWS,
        device_ids=req.device_ids,
        window=month_window(req.zone, req.year, req.month),
        limit=_caller_limit(req),
        offset_hours=req.zone.offset_hours,
    )
    return CompiledQuery(ReadMode.ALL_PARAMETERS_BY_MONTH, desc, "all_parameters_by_month", "raw",
                         month=req.month, year=req.year, limit=_caller_limit(req))

def _compile_latest_per_parameter(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    desc = QueryDescriptor(
        shape=Shape.LATEST_PER_PARAMETER,
        device_ids=req.device_ids,
        offset_hours=req.zone.offset_hours,
    )
    return CompiledQuery(ReadMode.LATEST_PER_PARAMETER, desc, "now", "latest")

def _single_aggregate(req: QueryRequest, mode: ReadMode, window: TimeWindow, scope: str) -> CompiledQuery:
    """One aggregate over the whole window: the extreme row for max/min, a mean for avg."""
    agg = _require_aggregate(req)
    if req.has_parameter_list:
        # one object per response; max/min across different quantities is meaningless
        raise ValidationError("value tunggal hanya untuk satu jenis")
    desc = QueryDescriptor(
        shape=Shape.SUMMARY if agg is Aggregate.AVG else Shape.EXTREME,
        device_ids=req.device_ids,
        parameters=req.parameters,
        window=window,
        aggregate=agg,
        limit=1,
        offset_hours=req.zone.offset_hours,
    )
    return CompiledQuery(mode, desc, f"{scope}_{_value_label(req)}", "aggregate", single=True,
                         month=req.month if scope == PERIOD_MONTH else None,
                         year=req.year if scope == PERIOD_MONTH else None)

def _buckets(req: QueryRequest, window: TimeWindow, group_by: GroupBy, agg: Aggregate) -> QueryDescriptor:
    # newest buckets first so LIMIT keeps the most recent ones
    return QueryDescriptor(
        shape=Shape.BUCKETS,
        device_ids=req.device_ids,
        parameters=req.parameters,
        window=window,
        group_by=group_by,
        aggregate=agg,
        order=Order.DESC,
        limit=_caller_limit(req),
        offset_hours=req.zone.offset_hours,
        reverse_after_fetch=True,
    )

def _rows(req: QueryRequest, window: TimeWindow) -> QueryDescriptor:
    return QueryDescriptor(
        shape=Shape.ROWS,
        device_ids=req.device_ids,
        parameters=req.parameters,
        window=window,
        limit=_caller_limit(req),
        offset_hours=req.zone.offset_hours,
    )

def _compile_aggregate_value(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    agg = _require_aggregate(req)
    zone = req.zone
    month = year = None
    if req.date is not None:
        scope, window, group_by = "date", day_window(zone, req.date), GroupBy.HOUR
    elif req.month is not None:
        scope, window, group_by = PERIOD_MONTH, month_window(zone, req.year, req.month), GroupBy.DAY
        month, year = req.month, req.year
    else:
        scope = _require_period(req)
        if scope == PERIOD_DAY:
            window, group_by = trailing_window(now, TRAILING_DAY), GroupBy.HOUR
        elif scope == PERIOD_WEEK:
            window, group_by = calendar_days_window(zone, now, WEEK_DAYS_BACK), GroupBy.DAY
        else:
            window, group_by = calendar_days_window(zone, now, MONTH_DAYS_BACK), GroupBy.DAY
    desc = _buckets(req, window, group_by, agg)
    return CompiledQuery(ReadMode.AGGREGATE_VALUE, desc, f"{scope}_{_value_label(req)}", "aggregate",
                         month=month, year=year, limit=_caller_limit(req))

def _compile_date_scoped(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    mode = _require_mode(req)
    window = day_window(req.zone, req.date)
    if req.value_aggregate != VALUE_NONE:
        return _single_aggregate(req, ReadMode.DATE_SCOPED, window, "date")
    if mode == MODE_ROLLUP:
        desc = _buckets(req, window, GroupBy.HOUR, Aggregate.AVG)
    else:
        desc = _rows(req, window)
    return CompiledQuery(ReadMode.DATE_SCOPED, desc, "date", mode, limit=_caller_limit(req))

def _compile_generic_period(req: QueryRequest, now: dt.datetime) -> CompiledQuery:
    period = _require_period(req)
    mode = _require_mode(req)
    zone = req.zone
    month = req.month
    if req.value_aggregate != VALUE_NONE:
        # raw daily request with a value: one aggregate over the window
        if month is not None:
            return _single_aggregate(req, ReadMode.GENERIC_PERIOD, month_window(zone, req.year, month), PERIOD_MONTH)
        return _single_aggregate(req, ReadMode.GENERIC_PERIOD, trailing_window(now, TRAILING_DAY), PERIOD_DAY)

    if month is not None and period not in (PERIOD_DAY, PERIOD_MONTH):
        month = None

    if month is not None:
        window = month_window(zone, req.year, month)
    elif period == PERIOD_DAY:
        window = trailing_window(now, TRAILING_DAY)
    elif period == PERIOD_WEEK:
        window = (calendar_days_window(zone, now, WEEK_DAYS_BACK) if mode == MODE_ROLLUP
                  else trailing_window(now, TRAILING_WEEK))
    else:
        window = calendar_days_window(zone, now, MONTH_DAYS_BACK)

    if mode == MODE_ROLLUP:
        group_by = GroupBy.HOUR if period == PERIOD_DAY else GroupBy.DAY
        desc = _buckets(req, window, group_by, Aggregate.AVG)
    else:
        desc = _rows(req, window)
    return CompiledQuery(ReadMode.GENERIC_PERIOD, desc, period, mode,
                         month=month, year=req.year if month is not None else None,
                         limit=_caller_limit(req))


_COMPILERS = {
    ReadMode.RANDOM_SAMPLE: _compile_random_sample,
    ReadMode.MULTI_DEVICE_LATEST: _compile_multi_device_latest,
    ReadMode.LATEST: _compile_latest,
    ReadMode.ALL_PARAMETERS: _compile_all_parameters,
    ReadMode.ALL_PARAMETERS_BY_MONTH: _compile_all_parameters_by_month,
    ReadMode.LATEST_PER_PARAMETER: _compile_latest_per_parameter,
    ReadMode.AGGREGATE_VALUE: _compile_aggregate_value,
    ReadMode.DATE_SCOPED: _compile_date_scoped,
    ReadMode.GENERIC_PERIOD: _compile_generic_period,
}

def compile_query(mode: ReadMode, req: QueryRequest, now: dt.datetime | None = None) -> CompiledQuery:
    """Compile `req` under `mode`. `now` is the reference-zone clock (naive)."""
    now = now or reference_now()
    compiled = _COMPILERS[mode](req, now)
    d = compiled.descriptor
    logger.debug(
        "Compiled {} -> shape={} group_by={} aggregate={} window=[{}, {}) limit={}",
        mode.value, d.shape.value, d.group_by.value, d.aggregate.value,
        d.window.start, d.window.end, d.limit,
    )
    return compiled

def compile_export_query(device_id: str, sensors: tuple[str, ...], year: int, month: int,
                         zone: DisplayZone) -> QueryDescriptor:
    """Every reading of `sensors` in the display-zone month, oldest first."""
    return QueryDescriptor(
        shape=Shape.ROWS,
        device_ids=(device_id,),
        parameters=sensors,
        window=month_window(zone, year, month),
        order=Order.ASC,
        offset_hours=zone.offset_hours,
    )


# -------------------------
# SQL translation
# -------------------------
_AGG_FN = {
    Aggregate.MAX: func.max,
    Aggregate.MIN: func.min,
    Aggregate.AVG: func.avg,
}

def _reading_columns(source=SensorLog):
    return (source.id, source.device_unique_id, source.parameter_name, source.value, source.recorded_at)

def _shifted(offset_hours: int):
    # offsets come from the fixed zone table; inlined so GROUP BY and SELECT
    # render the identical expression
    if offset_hours == 0:
        return SensorLog.recorded_at
    return SensorLog.recorded_at + literal_column(f"INTERVAL '{int(offset_hours)} hours'", Interval)

def _bucket(group_by: GroupBy, offset_hours: int):
    shifted = _shifted(offset_hours)
    if group_by is GroupBy.HOUR:
        return func.date_trunc(literal_column("'hour'"), shifted)
    return cast(shifted, Date)

def _conditions(d: QueryDescriptor) -> list:
    conds = []
    if len(d.device_ids) == 1:
        conds.append(SensorLog.device_unique_id == d.device_ids[0])
    else:
        conds.append(SensorLog.device_unique_id.in_(d.device_ids))
    if len(d.parameters) == 1:
        conds.append(SensorLog.parameter_name == d.parameters[0])
    elif d.parameters:
        conds.append(SensorLog.parameter_name.in_(d.parameters))
    if d.window.start is not None:
        conds.append(SensorLog.recorded_at >= d.window.start)
    if d.window.end is not None:
        conds.append(SensorLog.recorded_at < d.window.end)
    return conds

def _time_order(d: QueryDescriptor, column):
    return column.asc() if d.order is Order.ASC else column.desc()

def build_statement(d: QueryDescriptor) -> Select:
    """Translate a descriptor into a parameterized PostgreSQL SELECT."""
    if not d.device_ids:
        raise ValidationError("device_id wajib diisi")
    conds = _conditions(d)

    if d.shape is Shape.ROWS:
        stmt = (select(*_reading_columns()).where(*conds)
                .order_by(_time_order(d, SensorLog.recorded_at), SensorLog.parameter_name.asc()))

    elif d.shape is Shape.LATEST_PER_DEVICE:
        stmt = (select(*_reading_columns()).where(*conds)
                .ext(distinct_on(SensorLog.device_unique_id))
                .order_by(SensorLog.device_unique_id.asc(), SensorLog.recorded_at.desc()))

    elif d.shape is Shape.LATEST_PER_PARAMETER:
        stmt = (select(*_reading_columns()).where(*conds)
                .ext(distinct_on(SensorLog.parameter_name))
                .order_by(SensorLog.parameter_name.asc(), SensorLog.recorded_at.desc()))

    elif d.shape is Shape.SAMPLE_PER_PARAMETER:
        rn = func.row_number().over(
            partition_by=(SensorLog.device_unique_id, SensorLog.parameter_name),
            order_by=SensorLog.recorded_at.desc(),
        ).label("rn")
        sampled = select(*_reading_columns(), rn).where(*conds).subquery("sampled")
        stmt = (select(*_reading_columns(sampled.c))
                .where(sampled.c.rn <= d.limit)
                .order_by(sampled.c.parameter_name.asc(), _time_order(d, sampled.c.recorded_at)))
        # the cap is per parameter, already applied through rn
        return stmt

    elif d.shape is Shape.BUCKETS:
        bucket = _bucket(d.group_by, d.offset_hours).label("bucket")
        value = func.round(cast(_AGG_FN[d.aggregate](SensorLog.value), Numeric), 2).label("value")
        stmt = (select(func.min(SensorLog.id).label("id"), SensorLog.device_unique_id,
                       SensorLog.parameter_name, value, bucket)
                .where(*conds)
                .group_by(SensorLog.device_unique_id, SensorLog.parameter_name, bucket)
                .order_by(_time_order(d, bucket)))

    elif d.shape is Shape.SUMMARY:
        value = func.round(cast(_AGG_FN[d.aggregate](SensorLog.value), Numeric), 2).label("value")
        stmt = (select(func.min(SensorLog.id).label("id"), SensorLog.device_unique_id,
                       SensorLog.parameter_name, value,
                       func.min(_shifted(d.offset_hours)).label("bucket"))
                .where(*conds)
                .group_by(SensorLog.device_unique_id, SensorLog.parameter_name))

    elif d.shape is Shape.EXTREME:
        by_value = SensorLog.value.desc() if d.aggregate is Aggregate.MAX else SensorLog.value.asc()
        stmt = (select(*_reading_columns()).where(*conds, SensorLog.value.is_not(None))
                .order_by(by_value, SensorLog.recorded_at.asc()))

    else:
        raise ValueError(f"Unsupported query shape: {d.shape}")

    if d.limit:
        stmt = stmt.limit(d.limit)
    return stmt
