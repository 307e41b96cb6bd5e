from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import Session
from sqlalchemy import inspect
from pydantic import BaseModel
from datetime import datetime
import uvicorn, asyncio, os, time, logging

# Import our modules
from app.core.database import get_db, engine, Base, SessionLocal
from app.core.errors import WorkflowError
from app.core.security import create_access_token, create_refresh_token, decode_token, ACCESS_TTL_MIN
from app.deps.auth import require_role, get_notifier
from app.metrics import init_metrics_zero, request_latency_seconds
from app.models.change_request import ChangeRequest
from app.models.user import User
from app.crud.user import get_user_by_email, touch_last_login
from app.services.notifications import DirectNotifier, Notifier
from app.services.reminders import run_reminder_pass
from app.utils.audit_sink import AUDIT_DIR
from app.utils.policy import get_policy, reload_policy
from app.utils.runtime_config import set_notify_webhook, get_notify_webhook
from app.api import change_requests, files, users, notifications

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

REMINDER_ENABLED = os.getenv("REMINDER_ENABLED", "1") == "1"
REMINDER_INTERVAL_SEC = int(os.getenv("REMINDER_INTERVAL_SEC", "3600"))

_scheduler_task = None  # asyncio.Task

logger.info("database engine: %s (%s)", engine.url.render_as_string(hide_password=True), engine.name)

# FastAPI app
app = FastAPI(
    title="QMS Change Control API",
    description="Change-request approval workflow for quality management",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)

app.include_router(change_requests.router)
app.include_router(files.router)
app.include_router(users.router)
app.include_router(notifications.router)

@app.middleware("http")
async def time_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    request_latency_seconds.labels(method=request.method).observe(time.perf_counter() - start)
    return response

@app.on_event("startup")
def on_startup():
    logger.info("creating tables on startup")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("error creating tables")
    logger.info("tables now: %s", inspect(engine).get_table_names())
    logger.info("audit mirror dir: %s", AUDIT_DIR)
    init_metrics_zero()

    global _scheduler_task
    if REMINDER_ENABLED:
        logger.info("[reminders] enabled; interval=%ss", REMINDER_INTERVAL_SEC)
        loop = asyncio.get_event_loop()
        _scheduler_task = loop.create_task(_reminder_loop())
    else:
        logger.info("[reminders] disabled by REMINDER_ENABLED=0")

@app.on_event("shutdown")
def on_shutdown():
    global _scheduler_task
    if _scheduler_task:
        _scheduler_task.cancel()
        _scheduler_task = None

# -------------------------- errors --------------------------

@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors()), "kind": "ValidationError"},
    )

@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

# -------------------------- health / metrics --------------------------

@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        # Test database connection
        change_requests_count = db.query(ChangeRequest).count()
        tables = inspect(db.get_bind()).get_table_names()
        return {
            "status": "healthy",
            "database": "connected",
            "change_requests_count": change_requests_count,
            "tables": tables,
            "timestamp": datetime.now()
        }
    except Exception as e:
        logger.warning("health check failed: %s", e)
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
            "timestamp": datetime.now()
        }

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

# -------------------------- auth --------------------------

class LoginIn(BaseModel):
    email: str

@app.post("/auth/login")
def auth_login(body: LoginIn, db: Session = Depends(get_db)):
    user = get_user_by_email(db, body.email)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown or inactive user")
    touch_last_login(db, user)
    access = create_access_token(user.id, user.role)
    refresh = create_refresh_token(user.id, user.role)
    return {"access_token": access, "refresh_token": refresh, "token_type": "bearer",
            "expires_in": ACCESS_TTL_MIN * 60, "role": user.role, "user_id": user.id}

class RefreshIn(BaseModel):
    refresh_token: str

@app.post("/auth/refresh")
def auth_refresh(body: RefreshIn, db: Session = Depends(get_db)):
    try:
        data = decode_token(body.refresh_token, expected_type="refresh")
        user = db.get(User, int(data["sub"]))
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired refresh token")
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown or inactive user")
    new_access = create_access_token(user.id, user.role)
    return {"access_token": new_access, "token_type": "bearer", "expires_in": ACCESS_TTL_MIN * 60}

# -------------------------- policy / runtime config --------------------------

@app.get("/api/policy", response_model=dict)
def api_policy(user=Depends(require_role("requester", "hod", "qa_correspondent", "cct"))):
    return get_policy()

@app.post("/api/policy/reload", response_model=dict)
def api_policy_reload(user=Depends(require_role("admin"))):
    p = reload_policy()
    logger.info("policy reloaded by user=%s", user.id)
    return {"status": "reloaded", "sections": list(p.keys())}

class NotifyWebhookIn(BaseModel):
    webhook_url: str

@app.post("/config/notify-webhook", response_model=dict)
def api_set_notify_webhook(body: NotifyWebhookIn, user=Depends(require_role("admin"))):
    url = body.webhook_url.strip()
    if url and not url.startswith(("https://", "http://")):
        raise HTTPException(status_code=400, detail="Invalid webhook URL")
    set_notify_webhook(url)
    return {"saved": True}

@app.get("/config/notify-webhook", response_model=dict)
def api_get_notify_webhook(user=Depends(require_role("admin"))):
    val = get_notify_webhook()
    masked = (val[:20] + "…") if val else None
    return {"configured": bool(val), "webhook_url_preview": masked}

# -------------------------- reminders --------------------------

@app.post("/admin/reminders/run", response_model=dict)
def admin_reminders_run(db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier),
                        user=Depends(require_role("admin"))):
    result = run_reminder_pass(db, notifier)
    return {"ran": True, **result, "interval_sec": REMINDER_INTERVAL_SEC}

def _reminders_once():
    db = SessionLocal()
    try:
        run_reminder_pass(db, DirectNotifier(SessionLocal))
    finally:
        db.close()

async def _run_reminders():
    # blocking DB and webhook I/O runs in a worker thread
    try:
        await asyncio.to_thread(_reminders_once)
    except Exception:
        logger.exception("[reminders] pass error")

async def _reminder_loop():
    while True:
        await _run_reminders()
        await asyncio.sleep(REMINDER_INTERVAL_SEC)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
