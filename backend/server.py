from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

from bootstrap import ensure_schema
from errors import AppError, InternalError, ValidationError
from rate_limit import (
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_WINDOW_SECONDS,
    FixedWindowRateLimiter,
    RateLimitMiddleware,
)
from routers.admin import router as admin_router
from routers.auth_user import router as auth_user_router
from routers.events import router as events_router
from routers.profile import router as profile_router
from routers.public import router as public_router

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

APP_ENV = os.environ.get('APP_ENV', 'production').strip().lower()

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


# ==================== STARTUP ====================
@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_schema()
    logger.info("Database schema ready")
    yield


app = FastAPI(title="INS Fest Registration API", version="1.0.0", lifespan=lifespan)
api_router = APIRouter(prefix="/api")

rate_limiter = FixedWindowRateLimiter(RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS)


# ==================== ERRORS ====================
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    error = ValidationError(errors=errors)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_payload()))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    code = "NOT_FOUND" if exc.status_code == 404 else "REQUEST_ERROR"
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": code, "message": message, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = InternalError()
    payload = error.to_payload()
    if APP_ENV == "development":
        payload["detail"] = str(exc)
    return JSONResponse(status_code=error.status_code, content=payload)


api_router.include_router(public_router)
api_router.include_router(auth_user_router)
api_router.include_router(profile_router)
api_router.include_router(events_router)
api_router.include_router(admin_router)

app.include_router(api_router)

app.add_middleware(
    RateLimitMiddleware,
    limiter=rate_limiter,
    prefix="/api",
    enabled=RATE_LIMIT_ENABLED,
)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
