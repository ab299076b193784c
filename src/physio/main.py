from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.physio.api.v1.routes_appointments import router as appointments_router_v1
from src.physio.api.v1.routes_exercises import router as exercises_router_v1
from src.physio.api.v1.routes_notes import router as notes_router_v1
from src.physio.api.v1.routes_plans import router as plans_router_v1
from src.physio.api.v1.routes_public import page_router as public_page_router
from src.physio.api.v1.routes_public import router as public_router_v1
from src.physio.api.v1.routes_sessions import router as sessions_router_v1
from src.physio.api.v1.routes_system import router as system_router_v1
from src.physio.config import settings
from src.physio.infra.db.bootstrap import init_sql_repositories
from src.physio.services.exercises.library import exercise_library
from src.physio.services.plans.service import treatment_plan_finalizer

app = FastAPI(title="Physio Session Workflow API")


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    When USE_SQL_REPOS is enabled and a DATABASE_URL is configured, SQL-backed
    repositories replace the in-memory ones. The exercise library is seeded
    with a starter set when empty.
    """

    init_sql_repositories()
    exercise_library.seed_defaults()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    """Close the email backend's HTTP connections."""

    await treatment_plan_finalizer.aclose()

# CORS configuration – permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(appointments_router_v1, prefix="/api/v1")
app.include_router(sessions_router_v1, prefix="/api/v1")
app.include_router(notes_router_v1, prefix="/api/v1")
app.include_router(exercises_router_v1, prefix="/api/v1")
app.include_router(plans_router_v1, prefix="/api/v1")
app.include_router(public_router_v1, prefix="/api/v1")
app.include_router(public_page_router)
