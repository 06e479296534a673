import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from docqa.core.config import get_settings
from docqa.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from docqa.core.logging import bind_request_id, configure_logging, get_logger
from docqa.db.init import init_db
from docqa.routers import auth, credits, documents, payments, qa

settings = get_settings()
configure_logging(debug=settings.debug, level=settings.log_level)
log = get_logger(__name__)

app = FastAPI(
    title="docqa API",
    description="Question answering over uploaded documents, paid for with prepaid credits.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    # The frontend reads the post-debit balance from /v1/qa/ask.
    expose_headers=["X-Request-ID", "X-Credits-Remaining"],
)


@app.middleware("http")
async def request_context(request, call_next):
    """Tag logs and audit entries with a request id; log one line per request."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(auth.router, prefix="/v1/auth", tags=["auth"])
app.include_router(credits.router, prefix="/v1/credits", tags=["credits"])
app.include_router(payments.router, prefix="/v1/payments", tags=["payments"])
app.include_router(documents.router, prefix="/v1/documents", tags=["documents"])
app.include_router(qa.router, prefix="/v1/qa", tags=["qa"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    # Indexes (including the unique payment index) exist before the first request.
    app.state.mongo = await init_db()
    log.info("startup", msg="DB connected", db=settings.mongodb_db_name)


@app.on_event("shutdown")
async def shutdown():
    mongo = getattr(app.state, "mongo", None)
    if mongo is not None:
        mongo.close()
        log.info("shutdown", msg="DB connection closed")


@app.get("/health")
async def health():
    """Liveness only; does not touch the database."""
    return {"status": "ok"}
