# backend/main.py

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from db import engine, Base

# IMPORT MODELS so that create_all() sees them
import models

from auth import router as auth_router
from chat_router import router as chat_router
from conversation_router import router as conv_router
from analysis_router import router as analysis_router

API_VERSION = "1.0.0"
API_PREFIX = "/api"

logger = logging.getLogger("chat_portal")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


settings = get_settings()
configure_logging(settings.log_level)

# Create tables (users, conversations, chat_messages)
Base.metadata.create_all(bind=engine)

app = FastAPI(title="AI Chat Portal API", version=API_VERSION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
    return response


# ——————————————————————————————————————————————
# Error envelope: {"success": false, "message": ..., "error": ...}
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        body = {"success": False, "message": "Route not found"}
    elif isinstance(exc.detail, dict):
        body = {"success": False, **exc.detail}
    else:
        body = {"success": False, "message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err["loc"] if p not in ("body", "query", "path"))
        problems.append(f"{field}: {err['msg']}" if field else err["msg"])
    message = "Invalid request: " + "; ".join(problems)
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error", "error": str(exc)},
    )


# ——————————————————————————————————————————————
@app.get("/health")
def health():
    return {
        "success": True,
        "message": "AI Chat Portal API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/")
def root():
    return {
        "success": True,
        "message": "Welcome to AI Chat Portal API",
        "version": API_VERSION,
        "endpoints": {
            "auth": f"{API_PREFIX}/auth",
            "chat": f"{API_PREFIX}/chat",
            "analysis": f"{API_PREFIX}/analysis",
        },
    }


# ——————————————————————————————————————————————
# Include authentication, chat, conversation and analysis routers
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(chat_router, prefix=API_PREFIX)
app.include_router(conv_router, prefix=API_PREFIX)
app.include_router(analysis_router, prefix=API_PREFIX)
