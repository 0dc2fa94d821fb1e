import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .recurrence import InvalidDateFormat
from .settings import get_settings
from .routers import dates as dates_router
from .routers import friends as friends_router

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "dates",
        "description": "Track cherished dates and see their next occurrence, countdown and status.",
    },
    {"name": "friends", "description": "Friend requests and accepted friendships."},
]

_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Cherished Dates Backend",
    description="Backend API for tracking recurring and one-time cherished dates.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raised exception object itself
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": _jsonable_errors(exc),
        },
    )


@app.exception_handler(InvalidDateFormat)
async def invalid_date_exception_handler(request: Request, exc: InvalidDateFormat) -> JSONResponse:
    """
    Surface calendar date parse failures from query parameters or stored data.
    """
    logger.info("invalid date on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content={
            "error": "InvalidDateFormat",
            "message": "Dates must be valid calendar days in YYYY-MM-DD form",
            "detail": str(exc),
        },
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {
        "message": "Healthy",
        "backend": _settings.persistence_backend,
        "timezone": _settings.app_timezone,
    }


app.include_router(dates_router.router)
app.include_router(friends_router.router)
