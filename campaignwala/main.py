import logging
import traceback

import pymongo
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campaignwala import config, db
from campaignwala.errors import AppError, ERROR_INTERNAL
from campaignwala.routes import leads, offers, users, wallet, withdrawals
from campaignwala.utils.helpers import serialize_doc, utcnow

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("uvicorn.error")

app = FastAPI(title="Campaignwala API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(offers.router, prefix="/api/offers", tags=["offers"])
app.include_router(leads.router, prefix="/api/leads", tags=["leads"])
app.include_router(wallet.router, prefix="/api/wallet", tags=["wallet"])
app.include_router(withdrawals.router, prefix="/api/withdrawals", tags=["withdrawals"])


@app.on_event("startup")
def startup_db_client():
    # tests bind their own client before the app starts
    if db.client is None:
        db.init_db()


@app.on_event("shutdown")
def shutdown_db_client():
    if db.client is not None:
        db.client.close()


def error_response(status_code, message, **extra):
    content = {"success": False, "message": message}
    content.update({k: serialize_doc(v) for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on path %s: %s", type(exc).__name__, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message, data=exc.data)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return error_response(400, "Validation failed", errors=errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    return error_response(exc.status_code, message)


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    # This will print the full traceback (file + line + code) to terminal
    logger.error("Unhandled exception on path %s:\n%s", request.url.path, traceback.format_exc())
    return error_response(500, ERROR_INTERNAL, error=None if config.is_production() else str(exc))


def check_mongodb_connection():
    try:
        db.client.list_database_names()
        return True
    except pymongo.errors.PyMongoError:
        return False


@app.get("/api/health")
async def health_check():
    connected = check_mongodb_connection()
    content = {
        "success": connected,
        "message": "Server is running" if connected else "Database unavailable",
        "database": "connected" if connected else "disconnected",
        "environment": config.APP_ENV,
        "timestamp": utcnow().isoformat(),
    }
    return JSONResponse(content=content, status_code=200 if connected else 503)
