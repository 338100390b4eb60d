# sync_beds24/main.py

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sync_beds24.config import ALLOWED_ORIGINS
from sync_beds24.errors import Beds24Error
from sync_beds24.logging_config import setup_logging
from sync_beds24.middleware import RequestIDMiddleware
from sync_beds24.routes._helpers import error_response
from sync_beds24.routes.bootstrap import router as bootstrap_router
from sync_beds24.routes.connections import router as connections_router
from sync_beds24.routes.health import router as health_router
from sync_beds24.routes.metrics import router as metrics_router
from sync_beds24.routes.monitoring import router as monitoring_router
from sync_beds24.routes.rate_push import router as rate_push_router
from sync_beds24.routes.recovery import router as recovery_router
from sync_beds24.routes.scheduler import router as scheduler_router
from sync_beds24.routes.webhook import router as webhook_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Beds24 Sync API",
    description="Channel-manager sync between the hotel PMS and Beds24",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(Beds24Error)
async def beds24_error_handler(request: Request, exc: Beds24Error) -> JSONResponse:
    return error_response(exc)


# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(scheduler_router, prefix="/beds24", tags=["Scheduler"])
app.include_router(bootstrap_router, prefix="/beds24", tags=["Bootstrap"])
app.include_router(rate_push_router, prefix="/beds24", tags=["Rate Push"])
app.include_router(recovery_router, prefix="/beds24", tags=["Recovery"])
app.include_router(monitoring_router, prefix="/beds24", tags=["Monitoring"])
app.include_router(connections_router, prefix="/beds24", tags=["Connections"])
app.include_router(webhook_router, prefix="/beds24", tags=["Webhook"])
