import logging
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from config import settings
from create_tables import create_all_tables

from modules.documents.exceptions import SigningError
from modules.notifications.controllers.notification_controller import router as notification_router
from modules.documents.controllers.document_controller import router as document_router
from modules.documents.controllers.signing_controller import router as signing_router
from modules.auth.controllers.auth_controller import router as auth_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    logger.info("Starting application")
    create_all_tables()
    logger.info("Tables ready")
    yield
    # --- Shutdown logic ---
    logger.info("Application stopped")


app = FastAPI(
    title="Document Signing Service",
    description="Signing requests, single-use signing links and audit trails for uploaded documents",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-Document-Password",
        "Origin",
    ],
    max_age=86400,
)


@app.exception_handler(SigningError)
async def signing_error_handler(request: Request, exc: SigningError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


# Routers
app.include_router(auth_router)
app.include_router(notification_router, prefix="/notifications", tags=["notifications"])
app.include_router(document_router)
app.include_router(signing_router)

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
