"""
Expense tracker backend - Pro subscription and entitlement API
"""

from pathlib import Path
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from routers.payments_router import payments_router
from database import init_db
from config.settings import settings
from utils.responses import error_response
from utils.shared_utils import utcnow

# Logging setup - write ALL events to /logs/app.log
LOGS_DIR = Path("./logs")
LOGS_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

API_VERSION = "v3"

app = FastAPI(title="Expense Tracker API")


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception: {e}\n{traceback.format_exc()}")
            return JSONResponse(
                status_code=500,
                content={"ok": False, "error": "Internal Server Error"}
            )


# Request logging middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)


app.add_middleware(UncaughtExceptionMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS MUST be near the bottom
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.cors_origin],
    allow_credentials=settings.cors_origin != "*",
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as invalid_input (400)."""
    logger.warning(f"Invalid request body for {request.method} {request.url.path}: {exc.errors()}")
    return error_response("invalid_input", status=400, message="Invalid request body")


# ============================================================================
# STARTUP CHECKS
# ============================================================================
@app.on_event("startup")
async def check_env_keys_on_startup():
    """Check for missing environment variables on startup (non-fatal warning)"""
    key_checks = {
        "CASHFREE_APP_ID": settings.cashfree_app_id,
        "CASHFREE_SECRET_KEY": settings.cashfree_secret_key,
        "BACKEND_URL": settings.backend_url,
    }
    missing = [key for key, value in key_checks.items() if not value]
    if not (settings.jwt_secret_key or settings.auth_jwks_url):
        missing.append("JWT_SECRET_KEY or AUTH_JWKS_URL")
    if missing:
        logger.warning(f"Startup check: Missing environment variables: {', '.join(missing)}")
    else:
        logger.info("Startup check: All critical environment variables are set")
    logger.info(f"Cashfree environment: {settings.cashfree_env}")


# Initialize database on startup
@app.on_event("startup")
async def initialize_database():
    """Create all tables."""
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


@app.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": utcnow().isoformat() + "Z", "version": API_VERSION}


# ============================================================================
# INCLUDE ROUTERS
# ============================================================================
app.include_router(payments_router)


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    return JSONResponse(status_code=404, content={"error": "Route not found"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3001)
