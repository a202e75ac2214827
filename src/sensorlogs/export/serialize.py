"""Tabular export of pivoted rows.

`build_table` produces the one row stream every format consumes. Sinks only
decide how cells are rendered; they never reorder or change row content.
"""
import csv
import io
from dataclasses import dataclass
from typing import Protocol, Sequence

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from sensorlogs.export.pivot import PivotRow, format_value, row_values

Cell = int | float | str

CSV_BOM = b"\xef\xbb\xbf"
SHEET_NAME = "Data Sensor"
COLUMN_WIDTH = 15
NUMBER_FORMAT = "0.00"


@dataclass(frozen=True)
class Table:
    header: list[str]
    rows: list[list[Cell]]
    # 1-based column indexes holding sensor values
    value_columns: range


def time_header(zone_label: str) -> str:
    return f"Waktu ({zone_label})"


def build_table(rows: Sequence[PivotRow], sensors: Sequence[str], labels: Sequence[str],
                zone_label: str) -> Table:
    """Header `No, <labels>, Waktu (<ZONE>)`, then `[n, values..., time key]`."""
    return Table(
        header=["No", *labels, time_header(zone_label)],
        rows=[[no, *row_values(row, sensors), row.time_key] for no, row in enumerate(rows, start=1)],
        value_columns=range(2, len(sensors) + 2),
    )


class Sink(Protocol):
    extension: str
    media_type: str

    def render(self, table: Table) -> bytes:
        ...


class CsvSink:
    extension = "csv"
    media_type = "text/csv; charset=utf-8"

    def render(self, table: Table) -> bytes:
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(table.header)
        for row in table.rows:
            writer.writerow([format_value(c) if isinstance(c, float) else c for c in row])
        # BOM so spreadsheet apps pick UTF-8 for the degree/percent labels
        return CSV_BOM + buf.getvalue().encode("utf-8")


class XlsxSink:
    extension = "xlsx"
    media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    def render(self, table: Table) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_NAME
        ws.append(table.header)
        for row in table.rows:
            ws.append(row)
            for col in table.value_columns:
                ws.cell(row=ws.max_row, column=col).number_format = NUMBER_FORMAT
        for col in range(1, len(table.header) + 1):
            ws.column_dimensions[get_column_letter(col)].width = COLUMN_WIDTH
        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()


SINKS: dict[str, Sink] = {
    "csv": CsvSink(),
    "excel": XlsxSink(),
}


def report_filename(month: str, year: str, zone_label: str, sink: Sink) -> str:
    return f"Report_AllSensors_{month}_{year}_{zone_label}.{sink.extension}"
