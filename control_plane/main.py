from fastapi import FastAPI

from control_plane.api.errors import register_exception_handlers
from control_plane.api.v1.api import api_router
from control_plane.config import settings
from control_plane.logging_config import setup_logging
from control_plane.middleware.metrics import PrometheusMiddleware, metrics_endpoint, set_app_info
from control_plane.middleware.request_logging import RequestLoggingMiddleware

# ── Initialize structured logging ──
setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

register_exception_handlers(app)

# Request logging middleware: request ID, actor, deadline, timing
app.add_middleware(RequestLoggingMiddleware)

# Prometheus metrics middleware: request count, latency, in-progress
app.add_middleware(PrometheusMiddleware)

app.include_router(api_router, prefix=settings.API_V1_STR)

app.add_route("/metrics", metrics_endpoint, methods=["GET"])
set_app_info(env=settings.APP_ENV)


@app.get("/health")
def health_check():
    status = {"status": "ok", "env": settings.APP_ENV, "store": settings.STORE_BACKEND}
    if settings.STORE_BACKEND == "sql":
        from control_plane.db.session import get_pool_status

        status["db_pool"] = get_pool_status()
    return status
