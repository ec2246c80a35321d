import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from service_scheduler.core.config import settings
from service_scheduler.core.db import Base, engine
from service_scheduler.core.logging_config import configure_logging
from fastapi.middleware.cors import CORSMiddleware
from service_scheduler.domains.booking.router import router as booking_router
from service_scheduler.domains.fleet.router import router as admin_router
from service_scheduler.domains.notifications.router import router as notifications_router
from service_scheduler.domains.threshold_engine.router import router as engine_router
from service_scheduler.utils.push import push_configured


logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request, exc: RequestValidationError):
    # Helpful for debugging 422s in dev. Do not log full bodies in prod.
    if settings.env == "dev":
        body = await request.body()
        logger.info("[422] path=%s errors=%s body=%r", request.url.path, exc.errors(), body[:500])
    return JSONResponse(status_code=422, content={"detail": exc.errors()})

# Dev CORS so a local frontend can call the API from the browser.
origins = [o.strip() for o in settings.cors_allow_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins if origins else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    # Auto-create tables. Replace with migrations when the schema starts to move.
    Base.metadata.create_all(bind=engine)
    logger.info("%s started env=%s depot_timezone=%s", settings.app_name, settings.env, settings.depot_timezone)


@app.get("/health")
def health() -> dict:
    return {
        "ok": True,
        "service": settings.app_name,
        "env": settings.env,
        "depot_timezone": settings.depot_timezone,
        "cancellation_window_hours": settings.cancellation_window_hours,
        "push_configured": push_configured(),
    }


app.include_router(engine_router, tags=["threshold-engine"])
app.include_router(notifications_router, tags=["notifications"])
app.include_router(booking_router, tags=["booking"])
app.include_router(admin_router, tags=["admin"])
