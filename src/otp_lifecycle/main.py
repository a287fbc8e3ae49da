"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from otp_lifecycle.api.router import router as otp_router
from otp_lifecycle.api.schemas import ErrorItem, ErrorResponse
from otp_lifecycle.config import settings
from otp_lifecycle.database.engine import init_db

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    await init_db()
    logger.info("Database initialised")
    yield
    logger.info("Shutting down %s …", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="API for requesting, resending, and verifying one-time passwords",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(otp_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report body validation failures as 400 with one item per problem."""
    errors = [
        ErrorItem(
            code=err.get("type", "validation_error"),
            # Drop the leading "body" location segment.
            path=[str(part) for part in err.get("loc", ())[1:]],
            message=err.get("msg", "Validation failed"),
        )
        for err in exc.errors()
    ]
    message = errors[0].message if len(errors) == 1 else "Please check your input and try again."
    body = ErrorResponse(
        message=message,
        errors=errors,
        correlation_id=request.headers.get("correlationid"),
    )
    return JSONResponse(status_code=400, content=body.model_dump(by_alias=True, exclude_none=True))


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}
