import io
import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from config import get_settings
from csv_io import read_transactions, write_accounts
from errors import IoFailure, MalformedRecord
from logging_config import configure_logging
from models import AccountSnapshot, ErrorResponse, HealthResponse, ProcessResponse
from services import get_transaction_processor

settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Payments Engine API")
    yield
    logger.info("Shutting down Payments Engine API")


app = FastAPI(
    title=settings.app_name,
    description="Applies CSV transaction batches to client accounts and reports the final balances",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None,
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4),
    )

    return response


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health",
)
async def health_check():
    return HealthResponse(status="healthy", version=settings.app_version)


# Declared sync so the blocking fold runs in the threadpool.
@app.post(
    "/transactions/process",
    response_model=ProcessResponse,
    summary="Process Transactions",
    description="Apply an uploaded CSV of transactions to fresh accounts and return every account's final state",
    responses={
        200: {"description": "Batch processed; ignored records are counted in outcomes"},
        422: {"description": "Malformed record in the batch"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Internal server error"},
    },
)
@limiter.limit(lambda: f"{get_settings().rate_limit_per_minute}/minute")
def process_transactions(
    request: Request,
    file: UploadFile = File(..., description="CSV with header type,client,tx,amount"),
    skip_malformed: bool = Query(False, description="Skip malformed rows instead of rejecting the batch"),
    output_format: str = Query("json", alias="format", pattern="^(json|csv)$", description="Response format"),
):
    logger.info("Transaction batch received", filename=file.filename, skip_malformed=skip_malformed)

    processor = get_transaction_processor(settings)
    try:
        records = read_transactions(file.file, skip_malformed=skip_malformed or settings.skip_malformed)
        accounts = processor.run(records)
    except MalformedRecord as e:
        logger.warning("Transaction batch rejected", filename=file.filename, line=e.line, error=e.message)
        raise HTTPException(status_code=422, detail=str(e))
    except IoFailure as e:
        logger.error("Transaction batch could not be read", filename=file.filename, error=str(e))
        raise HTTPException(status_code=400, detail=str(e))

    if output_format == "csv":
        buffer = io.StringIO()
        write_accounts(accounts.values(), buffer)
        return PlainTextResponse(buffer.getvalue(), media_type="text/csv")

    return ProcessResponse(
        accounts=[AccountSnapshot.from_account(accounts[client]) for client in sorted(accounts)],
        records_processed=sum(processor.outcomes.values()),
        outcomes=dict(processor.outcomes),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            detail=exc.detail,
            error_code=f"HTTP_{exc.status_code}",
        ).model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail="Internal server error",
            error_code="INTERNAL_ERROR",
        ).model_dump(mode="json"),
    )


@app.get("/", include_in_schema=False)
async def root():
    return {"message": settings.app_name, "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
