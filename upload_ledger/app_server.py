from fastapi import (
    FastAPI,
    HTTPException,
    Query,
    Depends,
    Header,
    Request,
)
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from fastapi.middleware.cors import CORSMiddleware

from datetime import datetime, timedelta, timezone
from typing import Literal, Optional
import asyncio
import logging
import time
import uvicorn
import psutil

from .config import ADMIN_KEY, API_KEY, LOG_LEVEL, RETENTION_HOURS, SERVER_NAME
from .cleanup import CleanupCoordinator
from .database import SessionLocal, create_tables, engine
from .errors import ResidenceError, ResidenceUnresolved, ValidationFailure
from .ledger import UploadLedger
from .residence import make_minio_client, registry_from_env
from .retention import SweepReport, sweep_stale
from .schemas import UploadRecord
from .store import SqlAlchemyRecordStore

logging.basicConfig(
    level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("upload_ledger.server")

# --- Engine wiring ---
minio_client = make_minio_client()
ledger = UploadLedger(SqlAlchemyRecordStore(SessionLocal))
coordinator = CleanupCoordinator(ledger, registry_from_env(minio_client))

# --- Prometheus metrics ---
REQUEST_COUNT = Counter(
    "ledger_requests_total", "Total HTTP requests", ["method", "endpoint", "status"]
)

REQUEST_LATENCY = Histogram(
    "ledger_request_latency_seconds",
    "Latency of ledger requests (seconds)",
    ["endpoint"],
    buckets=(0.05, 0.1, 0.2, 0.5, 1, 2, 5),
)

CPU = Gauge("app_cpu_percent", "CPU percent")
MEM = Gauge("app_mem_bytes", "Resident memory bytes")

# --- FastAPI app ---
app = FastAPI(
    title="Upload Ledger",
    description="Operator API over upload records: lookup, removal, cleanup and retention sweeps.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*", "X-Api-Key", "Admin-Key"],
)

# Node-drain flag (lets the load balancer pull this instance from rotation)
DRAINING = False


def get_ledger() -> UploadLedger:
    return ledger


def get_coordinator() -> CleanupCoordinator:
    return coordinator


# --- Root endpoint ---
@app.get("/")
async def root():
    return {"message": f"Hello from {SERVER_NAME}"}


# --- Health (lightweight) ---
@app.get("/healthz")
@app.head("/healthz")
async def health_check():
    if DRAINING:
        return JSONResponse(
            status_code=503, content={"status": "draining", "app": SERVER_NAME}
        )
    return {"status": "ok", "app": SERVER_NAME}


# --- Readiness (deep check: DB + MinIO) ---
async def _check_db() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("database readiness check failed: %s", e)
        return False


async def _check_minio() -> bool:
    try:
        await asyncio.to_thread(minio_client.list_buckets)
        return True
    except Exception as e:
        logger.warning("minio readiness check failed: %s", e)
        return False


@app.get("/readyz")
async def readiness_check():
    db_ok = await _check_db()
    minio_ok = await _check_minio()
    ok = db_ok and minio_ok and (not DRAINING)
    return JSONResponse(
        status_code=200 if ok else 503,
        content={
            "status": "ok" if ok else "fail",
            "db": db_ok,
            "minio": minio_ok,
            "draining": DRAINING,
            "app": SERVER_NAME,
        },
    )


def _require_admin(x_admin_key: Optional[str]) -> None:
    if not ADMIN_KEY or x_admin_key != ADMIN_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized")


# --- Admin drain toggle (protect with ADMIN_KEY) ---
@app.post("/admin/drain")
async def set_drain(state: bool = Query(...), x_admin_key: str = Header(None)):
    _require_admin(x_admin_key)
    global DRAINING
    DRAINING = state
    logger.info("draining set to %s", DRAINING)
    return {"draining": DRAINING, "app": SERVER_NAME}


# --- Middleware: logging & metrics ---
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    endpoint = request.url.path
    REQUEST_COUNT.labels(
        method=request.method, endpoint=endpoint, status=str(response.status_code)
    ).inc()
    REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)

    logger.info(
        "%s %s %s - %.4fs", request.method, endpoint, response.status_code, duration
    )
    return response


# --- API key dependency ---
async def verify_api_key(x_api_key: str = Header(...)):
    if x_api_key != API_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized")


# --- Startup: create the uploads table ---
@app.on_event("startup")
async def startup_event():
    await create_tables(engine)
    logger.info("upload ledger ready on %s", SERVER_NAME)


# --- Prometheus metrics endpoint (update CPU/MEM on scrape) ---
@app.get("/metrics")
def metrics():
    CPU.set(psutil.cpu_percent())
    MEM.set(psutil.Process().memory_info().rss)
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.get("/metrics/heartbeat")
async def hb():
    CPU.set(psutil.cpu_percent())
    MEM.set(psutil.Process().memory_info().rss)
    return {"ok": True}


def _serialize(upload) -> dict:
    return UploadRecord.model_validate(upload).model_dump(mode="json")


# --- Exists / dedup lookup ---
@app.get("/v1/uploads", dependencies=[Depends(verify_api_key)])
async def check_exists(
    user_id: str = Query(...),
    file_id: str = Query(...),
    file_name: Optional[str] = Query(None),
    file_size: Optional[int] = Query(None, ge=0),
    ledger: UploadLedger = Depends(get_ledger),
):
    params = {"user_id": user_id, "file_id": file_id}
    if file_name is not None:
        params["file_name"] = file_name
    if file_size is not None:
        params["file_size"] = file_size
    upload = await ledger.check_exists(params)
    if not upload:
        raise HTTPException(status_code=404, detail="upload not found")
    return _serialize(upload)


@app.get("/v1/uploads/{upload_id}", dependencies=[Depends(verify_api_key)])
async def get_upload(upload_id: str, ledger: UploadLedger = Depends(get_ledger)):
    upload = await ledger.find(upload_id)
    if not upload:
        raise HTTPException(status_code=404, detail="upload not found")
    return _serialize(upload)


# --- Remove record, optionally deleting the remote object first ---
@app.delete("/v1/uploads/{upload_id}", dependencies=[Depends(verify_api_key)])
async def delete_upload(
    upload_id: str,
    cleanup: bool = Query(True),
    ledger: UploadLedger = Depends(get_ledger),
    coordinator: CleanupCoordinator = Depends(get_coordinator),
):
    if cleanup:
        try:
            await coordinator.cleanup(upload_id)
        except ResidenceUnresolved as e:
            raise HTTPException(status_code=409, detail=e.message)
        except ResidenceError as e:
            raise HTTPException(status_code=502, detail=e.message)
    else:
        await ledger.remove_entry(upload_id)

    return {"status": "deleted", "upload_id": upload_id, "cleanup": cleanup}


# --- Retention sweep ---
@app.post("/admin/sweep")
async def sweep(
    older_than_hours: int = Query(RETENTION_HOURS, ge=0),
    policy: Literal["remove", "cleanup"] = Query("remove"),
    x_admin_key: str = Header(None),
    ledger: UploadLedger = Depends(get_ledger),
    coordinator: CleanupCoordinator = Depends(get_coordinator),
):
    _require_admin(x_admin_key)
    cutoff = datetime.now(timezone.utc) - timedelta(hours=older_than_hours)
    report: SweepReport = await sweep_stale(ledger, cutoff, policy, coordinator)
    return report.model_dump(mode="json")


@app.exception_handler(ValidationFailure)
async def validation_failure_handler(request: Request, exc: ValidationFailure):
    return JSONResponse(status_code=422, content={"detail": exc.message})


# --- Run (HTTP only; TLS terminated upstream) ---
if __name__ == "__main__":
    uvicorn.run("upload_ledger.app_server:app", host="0.0.0.0", port=8000, log_level="info")
