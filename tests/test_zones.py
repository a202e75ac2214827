import datetime as dt

import pytest

from sensorlogs.errors import ValidationError
from sensorlogs.query.zones import as_reference, format_bucket, resolve_zone

from fakes import ts


@pytest.mark.parametrize("code,label,hours", [
    ("wib", "WIB", 0),
    ("WITA", "WITA", 1),
    ("Wit", "WIT", 2),
    (None, "WIB", 0),
    ("", "WIB", 0),
])
def test_resolve_zone(code, label, hours):
    """Zone codes are case-insensitive and default to WIB."""
    zone = resolve_zone(code)
    assert zone.label == label
    assert zone.offset_hours == hours


def test_unknown_zone_is_rejected():
    """An unrecognized code fails validation instead of defaulting."""
    with pytest.raises(ValidationError):
        resolve_zone("xyz")


def test_display_shift_per_zone():
    """A stored instant displays as T, T+1h and T+2h for WIB, WITA and WIT."""
    t = ts("2024-11-20 23:30:00")
    assert resolve_zone("wib").format(t) == "2024-11-20 23:30:00"
    assert resolve_zone("wita").format(t) == "2024-11-21 00:30:00"
    assert resolve_zone("wit").format(t) == "2024-11-21 01:30:00"
    # the stored value itself is untouched
    assert t == ts("2024-11-20 23:30:00")


def test_midnight_maps_back_to_reference():
    """Display-zone midnight is `offset` hours earlier in the reference zone."""
    zone = resolve_zone("wit")
    assert zone.midnight(dt.date(2024, 11, 1)) == ts("2024-10-31 22:00:00")
    assert zone.today(ts("2024-11-20 22:30:00")) == dt.date(2024, 11, 21)


def test_format_bucket():
    assert format_bucket(ts("2024-11-20 10:00:00")) == "2024-11-20 10:00:00"
    assert format_bucket(dt.date(2024, 11, 20)) == "2024-11-20"


def test_as_reference_drops_timezone():
    """Aware values are converted to the reference zone (UTC+7) and made naive."""
    aware = dt.datetime(2024, 11, 20, 3, 0, tzinfo=dt.timezone.utc)
    assert as_reference(aware) == ts("2024-11-20 10:00:00")
    naive = ts("2024-11-20 10:00:00")
    assert as_reference(naive) is naive
