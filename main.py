from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from routers import api_router
from config import settings
from database import engine, Base
from errors import AppError, AppErrorCode
from logs import log_error
from pyrate_limiter import BucketFullException
from rate_limit import rate_limit_exceeded, rule_for_key
import models  # ensure model registration
import os
import logging
import uuid
from sqlalchemy import inspect

app = FastAPI(title=settings.PROJECT_NAME)
# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# IMPORTANT:
# Avoid calling create_all() unconditionally in production because it can cause
# schema drift against Alembic migrations. We only auto-create in explicit
# test/dev scenarios (SQLite or env flag).
if os.environ.get("TESTING") or engine.url.get_backend_name() == "sqlite" or os.environ.get("DEV_AUTO_CREATE") == "1":
    Base.metadata.create_all(bind=engine)
else:
    # Lightweight runtime check: warn if the auth tables are missing so an admin
    # knows to run `alembic upgrade head`.
    try:
        insp = inspect(engine)
        missing = {t for t in Base.metadata.tables if t not in insp.get_table_names()}
        if missing:
            logging.getLogger(__name__).warning(
                "Database schema missing tables %s. Run Alembic migrations: `alembic upgrade head`.",
                ", ".join(sorted(missing))
            )
    except Exception as e:
        logging.getLogger(__name__).warning("Schema inspection failed: %s", e)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def error_body(message, code: str) -> dict:
    return {"detail": message, "code": code}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.detail, exc.app_code.value), headers=exc.headers)


# pyrate-limiter raises instead of returning False when configured to fail loudly
@app.exception_handler(BucketFullException)
async def bucket_full_handler(request: Request, exc: BucketFullException):
    rule = rule_for_key(getattr(exc, "meta_info", {}).get("name", ""))
    return await app_error_handler(request, rate_limit_exceeded(rule, request))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = {
        401: AppErrorCode.UNAUTHORIZED,
        404: AppErrorCode.NOT_FOUND,
        429: AppErrorCode.RATE_LIMITED,
    }.get(exc.status_code, AppErrorCode.BAD_REQUEST if exc.status_code < 500 else AppErrorCode.INTERNAL_ERROR)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.detail, code.value), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content=error_body(jsonable_encoder(exc.errors()), AppErrorCode.BAD_REQUEST.value))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_error("unhandled_exception", exc, correlation_id=getattr(request.state, "request_id", ""),
              context={"method": request.method, "path": request.url.path})
    return JSONResponse(status_code=500, content=error_body("Internal server error", AppErrorCode.INTERNAL_ERROR.value))


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
