# drivecrm/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from drivecrm import config
from drivecrm.db import close_pool
from drivecrm.logging_config import setup_logging
from drivecrm.routes import router as api_router
from drivecrm.security.errors import ApiError, InvalidRulesError, ScopeUnsupportedError

setup_logging(getattr(logging, config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_pool()


app = FastAPI(title="drivecrm-backend", lifespan=lifespan)

# ---------- CORS ----------
origins = [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,                # explicit origins (no "*")
    allow_credentials=True,               # session cookie
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-Service-Token",
        "X-Timestamp",
        "X-Signature",
    ],
)

# ---------- Errors ----------
# Denials (401/403) and internal resolver failures share one body shape but
# keep distinct codes.

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return exc.to_response()


@app.exception_handler(InvalidRulesError)
async def invalid_rules_handler(request: Request, exc: InvalidRulesError):
    logger.warning("Rejected permission rules on %s %s: %s", request.method, request.url.path, exc)
    return ApiError(400, exc.code, str(exc)).to_response()


@app.exception_handler(ScopeUnsupportedError)
async def scope_unsupported_handler(request: Request, exc: ScopeUnsupportedError):
    logger.error("Scope resolution failed on %s %s: %s", request.method, request.url.path, exc)
    return ApiError(500, exc.code, "Internal server error").to_response()


# ---------- Health ----------
@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(api_router)
