import datetime as dt

import pytest

from sensorlogs.errors import ValidationError
from sensorlogs.query.params import parse_query_request
from sensorlogs.query.resolver import RULES, ReadMode, resolve_mode

TODAY = dt.date(2024, 11, 20)


def req(**kw):
    kw.setdefault("device_id", "dev1")
    return parse_query_request(today=TODAY, **kw)


@pytest.mark.parametrize("params,expected", [
    ({"jenis": "suhu,kelembapan", "bulan": "11-2024"}, ReadMode.RANDOM_SAMPLE),
    # random sample outranks latest
    ({"jenis": "suhu,kelembapan", "bulan": "11", "mode": "latest"}, ReadMode.RANDOM_SAMPLE),
    ({"device_id": "dev1,dev2", "mode": "latest"}, ReadMode.MULTI_DEVICE_LATEST),
    ({"mode": "latest"}, ReadMode.LATEST),
    ({"mode": "latest", "jenis": "suhu", "periode": "now"}, ReadMode.LATEST),
    ({}, ReadMode.ALL_PARAMETERS),
    ({"mode": "ringkas"}, ReadMode.ALL_PARAMETERS),
    ({"bulan": "11-2024"}, ReadMode.ALL_PARAMETERS_BY_MONTH),
    ({"periode": "now"}, ReadMode.LATEST_PER_PARAMETER),
    ({"periode": "now", "jenis": "suhu", "value": "high"}, ReadMode.LATEST_PER_PARAMETER),
    ({"jenis": "suhu", "value": "high", "mode": "ringkas"}, ReadMode.AGGREGATE_VALUE),
    ({"jenis": "suhu", "value": "low", "periode": "minggu_ini"}, ReadMode.AGGREGATE_VALUE),
    ({"jenis": "suhu", "value": "avg", "periode": "bulan", "tanggal": "2024-11-20"}, ReadMode.AGGREGATE_VALUE),
    ({"jenis": "suhu", "tanggal": "2024-11-20"}, ReadMode.DATE_SCOPED),
    ({"jenis": "suhu", "tanggal": "2024-11-20", "value": "high"}, ReadMode.DATE_SCOPED),
    ({"jenis": "suhu"}, ReadMode.GENERIC_PERIOD),
    ({"jenis": "suhu", "periode": "bulan"}, ReadMode.GENERIC_PERIOD),
    ({"jenis": "suhu", "value": "high"}, ReadMode.GENERIC_PERIOD),
])
def test_priority_order(params, expected):
    assert resolve_mode(req(**params)) is expected


@pytest.mark.parametrize("params", [
    {"periode": "minggu_ini"},
    {"value": "high"},
    {"periode": "bulan", "mode": "ringkas"},
])
def test_parameter_required_after_parameterless_modes(params):
    """Without `jenis`, anything past the all-parameters and now rules is rejected."""
    with pytest.raises(ValidationError, match="jenis"):
        resolve_mode(req(**params))


def test_resolution_is_deterministic():
    r = req(jenis="suhu", value="high", periode="minggu_ini", tanggal="2024-11-20")
    assert {resolve_mode(r) for _ in range(5)} == {ReadMode.AGGREGATE_VALUE}


def test_every_strategy_has_a_rule():
    modes = {rule.mode for rule in RULES if rule.mode is not None}
    assert modes == set(ReadMode)
    assert RULES[-1].matches(req())
