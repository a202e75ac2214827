"""Display-zone handling.

Readings are stored as naive instants in the reference zone (WIB). Display
zones are whole-hour offsets from it and are applied at read time only.
"""
import datetime as dt
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from sensorlogs.config import settings
from sensorlogs.errors import ValidationError

DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

# hours ahead of the reference zone
ZONE_OFFSETS = {
    "WIB": 0,
    "WITA": 1,
    "WIT": 2,
}
DEFAULT_ZONE = "WIB"


@dataclass(frozen=True)
class DisplayZone:
    label: str
    offset_hours: int

    @property
    def offset(self) -> dt.timedelta:
        return dt.timedelta(hours=self.offset_hours)

    def to_display(self, instant: dt.datetime) -> dt.datetime:
        return instant + self.offset

    def to_reference(self, instant: dt.datetime) -> dt.datetime:
        return instant - self.offset

    def format(self, instant: dt.datetime) -> str:
        """Shift a stored instant into this zone and render it to the second."""
        return self.to_display(instant).strftime(DISPLAY_FORMAT)

    def today(self, now: dt.datetime) -> dt.date:
        return self.to_display(now).date()

    def midnight(self, day: dt.date) -> dt.datetime:
        """Reference-zone instant of 00:00 on `day` in this zone."""
        return self.to_reference(dt.datetime.combine(day, dt.time.min))


def resolve_zone(code: str | None) -> DisplayZone:
    """Map a zone code (wib/wita/wit, any case) to its offset. Empty means WIB."""
    label = (code or DEFAULT_ZONE).strip().upper() or DEFAULT_ZONE
    if label not in ZONE_OFFSETS:
        raise ValidationError("zonawaktu harus wib, wita, atau wit")
    return DisplayZone(label=label, offset_hours=ZONE_OFFSETS[label])


def reference_now() -> dt.datetime:
    """Current wall-clock time in the reference zone, naive like the stored data."""
    return dt.datetime.now(ZoneInfo(settings.REFERENCE_TZ)).replace(tzinfo=None)


def as_reference(instant: dt.datetime) -> dt.datetime:
    # timestamptz columns come back aware; stored values are compared naive
    if instant.tzinfo is None:
        return instant
    return instant.astimezone(ZoneInfo(settings.REFERENCE_TZ)).replace(tzinfo=None)


def format_bucket(bucket: dt.datetime | dt.date) -> str:
    """Render an already display-zone bucket: instants to the second, dates as days."""
    if isinstance(bucket, dt.datetime):
        return bucket.strftime(DISPLAY_FORMAT)
    return bucket.strftime(DATE_FORMAT)
