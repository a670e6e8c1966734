from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware import Middleware
from contextlib import asynccontextmanager
import time

from studentnet.core.config import settings
from studentnet.core.exceptions import StudentNetError, error_response
from studentnet.core.logging_config import logger
from studentnet.core.middleware import RequestLoggingMiddleware
from studentnet.core.rate_limiter import limiter, rate_limit_exceeded_handler
from .database import init_db
from .routers import achievements, auth, connections, notifications, users


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Startup: Database tables checked/created")
    yield


middleware = [
    Middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS),
    Middleware(CORSMiddleware,
               allow_origins=settings.CORS_ORIGINS,
               allow_credentials=True,
               allow_methods=["*"],
               allow_headers=["*"]),

    Middleware(GZipMiddleware, minimum_size=1000),
    Middleware(RequestLoggingMiddleware),
]

app = FastAPI(
    title="Student Network API",
    description="Accounts, connections, achievements and notifications for a student community",
    version="1.0.0",
    lifespan=lifespan,
    middleware=middleware
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(StudentNetError)
async def studentnet_error_handler(request: Request, exc: StudentNetError):
    return JSONResponse(status_code=exc.status_code, content=error_response(exc))


def _internal_error(exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An error occurred",
                "details": {"error": str(exc)} if settings.DEBUG else {},
            },
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    return _internal_error(exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    return _internal_error(exc)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    return response


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(connections.router, prefix="/api/connections", tags=["Connections"])
app.include_router(achievements.router, prefix="/api/achievements", tags=["Achievements"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])


@app.get("/")
def health_check():
    return {"success": True, "status": "ok", "message": "Student Network API is running"}
