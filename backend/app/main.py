import logging
import sys
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from app.api.v1 import categories, devices, preferences, profile, sessions, users

# Ensure app loggers (planner, dispatcher, ...) print to stdout
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logging.getLogger("app").setLevel(logging.DEBUG)
from app.config import settings
from app.core.errors import EngineError, engine_error_handler
from app.db.session import async_session_maker, init_db
from app.services.dispatcher import init_dispatcher, run_dispatch_tick
from app.services.entitlements import run_expire_subscriptions_job
from app.services.http_client import close_http_client, init_http_client
from app.services.planner import replan_active_sessions
from app.services.push_gateway import HttpPushGateway
from app.services.session_manager import run_session_maintenance_job
from prometheus_client import make_asgi_app

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def scheduled_replan():
    """Daily rolling refresh of every active session's plan."""
    planned = await replan_active_sessions()
    logger.info("Scheduled re-plan finished for %s users", planned)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_production_config()
    await init_db()
    init_http_client()
    init_dispatcher(async_session_maker, HttpPushGateway())

    scheduler.add_job(
        run_dispatch_tick,
        "interval",
        seconds=settings.dispatch_interval_seconds,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_session_maintenance_job,
        "interval",
        minutes=settings.maintenance_interval_minutes,
    )
    scheduler.add_job(
        run_expire_subscriptions_job,
        "interval",
        minutes=settings.maintenance_interval_minutes,
    )
    hour = settings.replan_cron_hour if 0 <= settings.replan_cron_hour <= 23 else 3
    scheduler.add_job(scheduled_replan, "cron", hour=hour, minute=0)

    scheduler.start()
    yield
    scheduler.shutdown()
    await close_http_client()


limiter = Limiter(key_func=get_remote_address, default_limits=["200/minute"])

app = FastAPI(
    title="SoulBuddy Notifications API",
    description="Mood sessions, notification planning and push delivery",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(EngineError, engine_error_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=500)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()] if settings.cors_origins else ["*"]
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(preferences.router, prefix="/api/v1")
app.include_router(devices.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(profile.router, prefix="/api/v1")
app.include_router(categories.router, prefix="/api/v1")

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/health")
@limiter.exempt
def health(request: Request):
    return {"status": "ok"}
