import io

from openpyxl import load_workbook

from sensorlogs.db.repository import Reading
from sensorlogs.export.pivot import pivot_readings
from sensorlogs.export.serialize import (
    CSV_BOM, SINKS, CsvSink, XlsxSink, build_table, report_filename, time_header,
)
from sensorlogs.query.zones import resolve_zone

from fakes import ts

SENSORS = ["suhu", "kelembapan"]
LABELS = ["Suhu(°C)", "Kelembapan(%)"]


def sample_table(zone="wib"):
    rows = pivot_readings([
        Reading(1, "dev1", "suhu", 25.5, ts("2024-11-20 10:00:00")),
        Reading(2, "dev1", "kelembapan", 60.0, ts("2024-11-20 10:00:00")),
        Reading(3, "dev1", "suhu", 26.37, ts("2024-11-20 11:30:00")),
    ], resolve_zone(zone))
    return build_table(rows, SENSORS, LABELS, resolve_zone(zone).label)


def test_build_table():
    table = sample_table()
    assert table.header == ["No", "Suhu(°C)", "Kelembapan(%)", "Waktu (WIB)"]
    assert table.rows == [
        [1, 25.5, 60.0, "2024-11-20 10:00:00"],
        [2, 26.37, 0.0, "2024-11-20 11:30:00"],
    ]
    assert list(table.value_columns) == [2, 3]


def test_empty_table_keeps_header():
    table = build_table([], SENSORS, LABELS, "WITA")
    assert table.header[-1] == time_header("WITA") == "Waktu (WITA)"
    assert table.rows == []


def test_csv_has_bom_and_minimal_numbers():
    content = CsvSink().render(sample_table())
    assert content.startswith(CSV_BOM)
    lines = content.decode("utf-8-sig").splitlines()
    assert lines == [
        "No,Suhu(°C),Kelembapan(%),Waktu (WIB)",
        "1,25.5,60,2024-11-20 10:00:00",
        "2,26.37,0,2024-11-20 11:30:00",
    ]


def test_csv_quotes_labels_with_commas():
    table = build_table([], ["a"], ["Arah, derajat"], "WIB")
    lines = CsvSink().render(table).decode("utf-8-sig").splitlines()
    assert lines == ['No,"Arah, derajat",Waktu (WIB)']


def test_xlsx_matches_csv_rows():
    table = sample_table("wit")
    wb = load_workbook(io.BytesIO(XlsxSink().render(table)))
    ws = wb.active
    assert ws.title == "Data Sensor"
    values = [list(r) for r in ws.iter_rows(values_only=True)]
    assert values[0] == ["No", "Suhu(°C)", "Kelembapan(%)", "Waktu (WIT)"]
    assert values[1] == [1, 25.5, 60, "2024-11-20 12:00:00"]
    assert values[2] == [2, 26.37, 0, "2024-11-20 13:30:00"]
    assert ws.cell(row=2, column=2).number_format == "0.00"
    assert ws.cell(row=3, column=3).number_format == "0.00"
    assert ws.column_dimensions["A"].width == 15


def test_sinks_and_filename():
    assert set(SINKS) == {"csv", "excel"}
    assert report_filename("11", "2024", "WIB", SINKS["excel"]) == "Report_AllSensors_11_2024_WIB.xlsx"
    assert report_filename("3", "2024", "WIT", SINKS["csv"]) == "Report_AllSensors_3_2024_WIT.csv"
    assert SINKS["csv"].media_type.startswith("text/csv")
