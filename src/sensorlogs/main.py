import sys
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger

from sensorlogs.config import settings
from sensorlogs.db.repository import ReadingStore, SqlReadingStore
from sensorlogs.db.session import SessionLocal, check_store
from sensorlogs.envelope import Envelope, error_envelope
from sensorlogs.errors import SensorLogsError, ValidationError
from sensorlogs.query.params import parse_query_request
from sensorlogs.service import export_report, parse_export_request, read_sensor_data


def configure_logging(level: str | None = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level=(level or settings.LOG_LEVEL).upper())

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if settings.STARTUP_DB_CHECK:
        # ConfigurationError here stops the server before it takes traffic
        check_store()
    yield

app = FastAPI(title="Sensor Logs Read API", version="0.2.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=False,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

def get_store() -> ReadingStore:
    return SqlReadingStore(SessionLocal)

@app.exception_handler(SensorLogsError)
async def sensorlogs_error_handler(request: Request, exc: SensorLogsError):
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    else:
        logger.info("{} {} rejected: {}", request.method, request.url.path, exc.message)
    body = error_envelope(exc.message).model_dump(exclude_none=True)
    return JSONResponse(status_code=exc.status_code, content=body)

@app.get("/healthz", summary="Healthz")
def healthz():
    return {"status": "ok"}

# -----------------------
# routes
# -----------------------
@app.get(
    "/api/sensor-data",
    summary="Sensor readings by device, parameter and period",
    response_model=Envelope,
    response_model_exclude_none=True,
)
def sensor_data(
    device_id: str | None = None,
    jenis: str | None = None,
    periode: str | None = None,
    mode: str | None = None,
    tahun: str | None = None,
    bulan: str | None = None,
    tanggal: str | None = None,
    value: str | None = None,
    zonawaktu: str | None = None,
    limit: str | None = None,
    store: ReadingStore = Depends(get_store),
):
    req = parse_query_request(
        device_id=device_id, jenis=jenis, periode=periode, mode=mode,
        tahun=tahun, bulan=bulan, tanggal=tanggal, value=value,
        zonawaktu=zonawaktu, limit=limit,
    )
    return read_sensor_data(req, store)

@app.get("/api/export-excel-multi", summary="Pivoted multi-sensor monthly report (xlsx or csv)")
def export_multi_sensor(
    device_id: str | None = None,
    bulan: str | None = None,
    tahun: str | None = None,
    sensors: str | None = None,
    sensor_meta: str | None = None,
    zonawaktu: str | None = None,
    out: str | None = None,
    store: ReadingStore = Depends(get_store),
):
    try:
        req = parse_export_request(device_id, bulan, tahun, sensors, sensor_meta, zonawaktu, out)
    except ValidationError as e:
        return PlainTextResponse(e.message, status_code=400)
    report = export_report(req, store)
    return Response(
        content=report.content,
        media_type=report.media_type,
        headers={"Content-Disposition": f'attachment; filename="{report.filename}"'},
    )
