import argparse
import json
import sys
from pathlib import Path

from loguru import logger

from sensorlogs.db.repository import ReadingStore, SqlReadingStore
from sensorlogs.db.session import SessionLocal, check_store
from sensorlogs.errors import SensorLogsError
from sensorlogs.query.params import parse_query_request
from sensorlogs.service import export_report, parse_export_request, read_sensor_data


def default_store() -> ReadingStore:
    return SqlReadingStore(SessionLocal)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sensorlogs")
    sub = parser.add_subparsers(dest="cmd", required=True)

    q = sub.add_parser("query", help="print the JSON envelope of a read request")
    q.add_argument("--device", required=True, help="device_id, comma-separated for multi-device latest")
    q.add_argument("--jenis", help="parameter name(s)")
    q.add_argument("--periode")
    q.add_argument("--mode")
    q.add_argument("--tahun")
    q.add_argument("--bulan")
    q.add_argument("--tanggal")
    q.add_argument("--value", help="high | low | avg")
    q.add_argument("--zona", default="wib")
    q.add_argument("--limit")

    e = sub.add_parser("export", help="write a pivoted monthly report to a file")
    e.add_argument("--device", required=True)
    e.add_argument("--bulan", required=True)
    e.add_argument("--tahun", required=True)
    e.add_argument("--sensors", required=True, help="comma-separated parameter names")
    e.add_argument("--sensor-meta", help="code:label pairs, comma-separated")
    e.add_argument("--zona", default="wib")
    e.add_argument("--out", default="excel", help="excel | csv")
    e.add_argument("--dir", default=".", help="output directory")

    s = sub.add_parser("serve", help="run the HTTP API")
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=8000)

    sub.add_parser("ping", help="check database connectivity")
    return parser

def main(argv: list[str] | None = None, store: ReadingStore | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.cmd == "serve":
        import uvicorn
        uvicorn.run("sensorlogs.main:app", host=args.host, port=args.port)
        return 0

    try:
        if args.cmd == "ping":
            check_store()
            return 0

        if args.cmd == "query":
            req = parse_query_request(
                device_id=args.device, jenis=args.jenis, periode=args.periode, mode=args.mode,
                tahun=args.tahun, bulan=args.bulan, tanggal=args.tanggal, value=args.value,
                zonawaktu=args.zona, limit=args.limit,
            )
            env = read_sensor_data(req, store or default_store())
            print(json.dumps(env.model_dump(exclude_none=True), indent=2, ensure_ascii=False))
            return 0

        if args.cmd == "export":
            req = parse_export_request(args.device, args.bulan, args.tahun, args.sensors,
                                       args.sensor_meta, args.zona, args.out)
            report = export_report(req, store or default_store())
            path = Path(args.dir) / report.filename
            path.write_bytes(report.content)
            logger.success(f"Wrote {report.rows} rows to {path}")
            return 0
    except SensorLogsError as e:
        logger.error(e.message)
        return 2
    return 1

if __name__ == "__main__":
    sys.exit(main())
