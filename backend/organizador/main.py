import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .db import init_db
from .errors import register_exception_handlers
from .logging_config import configure_logging
from .seed import ensure_default_admin, ensure_demo_data
from .routers import auth, usuarios, materias, comisiones, horarios
from .routers import contenidos, evaluaciones, profesores
from .routers import notificaciones, dashboard, estadisticas
from .services.amqp import get_amqp_service
from .utils.rate_limit import InMemoryRateLimiter, RateLimitMiddleware

logger = logging.getLogger(__name__)

rate_limiter = InMemoryRateLimiter()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    ensure_default_admin()
    if not settings.is_production:
        ensure_demo_data()
    logger.info("%s iniciado (entorno: %s)", settings.app_name, settings.environment)
    yield
    if settings.rabbitmq.enabled:
        get_amqp_service().close()


app = FastAPI(title="Organizador Académico API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.rate_limit_enabled:
    app.add_middleware(
        RateLimitMiddleware,
        limiter=rate_limiter,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

register_exception_handlers(app)


app.include_router(auth.router)
app.include_router(usuarios.router)
app.include_router(materias.router)
app.include_router(comisiones.router)
app.include_router(horarios.router)
app.include_router(contenidos.router)
app.include_router(evaluaciones.router)
app.include_router(profesores.router)
app.include_router(notificaciones.router)
app.include_router(dashboard.router)
app.include_router(estadisticas.router)


@app.get("/api/health")
def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


@app.get("/")
def root():
    return {"status": "ok", "service": "Organizador Académico API"}
