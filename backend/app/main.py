import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import check_db_connection
from app.routers.ai import router as ai_router
from app.routers.audit import router as audit_router
from app.routers.auth import router as auth_router
from app.routers.document_layout import router as document_layout_router
from app.routers.email_acknowledgment import router as email_acknowledgment_router
from app.routers.organization_variable import router as organization_variable_router
from app.routers.policy import router as policy_router
from app.routers.portal import router as portal_router
from app.routers.portal_viewer import router as portal_viewer_router
from app.routers.superadmin import router as superadmin_router
from app.routers.user import router as user_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": _field_name(err.get("loc", ())),
            "message": str(err.get("msg", "")).removeprefix("Value error, "),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(auth_router)
app.include_router(superadmin_router)
app.include_router(user_router)
app.include_router(organization_variable_router)
app.include_router(portal_router)
app.include_router(portal_viewer_router)
app.include_router(policy_router)
app.include_router(email_acknowledgment_router)
app.include_router(document_layout_router)
app.include_router(ai_router)
app.include_router(audit_router)


@app.get("/health")
async def health():
    """Health check: API is up and the database answers."""
    try:
        await check_db_connection()
        db_status = "connected"
    except Exception as exc:
        db_status = f"error: {exc}"

    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": db_status,
    }
