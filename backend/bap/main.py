import logging
import os
import time

import sentry_sdk
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .database import Base, engine
from .programs import InvalidAwardValue
from .routes import admin, members, submissions
from .services.submissions import (
    PermissionDenied,
    SubmissionError,
    SubmissionNotFound,
    SubmissionValidationError,
    WaitingPeriodError,
    WrongStateError,
)

logger = logging.getLogger(__name__)

dsn = os.getenv("SENTRY_DSN")
if dsn:
    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)
REJECTED_TRANSITIONS = Counter(
    "rejected_transitions", "Submission transitions rejected", ["kind"]
)

app = FastAPI(title="BAP API")

origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if os.getenv("TESTING") != "1":
    Base.metadata.create_all(bind=engine)


def _status_for(exc: SubmissionError) -> int:
    if isinstance(exc, SubmissionNotFound):
        return 404
    if isinstance(exc, PermissionDenied):
        return 403
    if isinstance(exc, SubmissionValidationError):
        return 422
    if isinstance(exc, WrongStateError):
        return 409
    return 400


async def submission_error_handler(request: Request, exc: SubmissionError):
    REJECTED_TRANSITIONS.labels(exc.kind).inc()
    logger.info("Rejected %s %s: %s (%s)", request.method, request.url.path, exc, exc.kind)
    body = {"detail": str(exc), "kind": exc.kind}
    if exc.field_errors:
        body["field_errors"] = exc.field_errors
    if isinstance(exc, WaitingPeriodError):
        body["days_remaining"] = exc.days_remaining
    return JSONResponse(status_code=_status_for(exc), content=body)


async def invalid_award_handler(request: Request, exc: InvalidAwardValue):
    logger.error("Corrupt award history behind %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "kind": "invalid_award_value"},
    )


app.add_exception_handler(SubmissionError, submission_error_handler)
app.add_exception_handler(InvalidAwardValue, invalid_award_handler)


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

app.include_router(submissions.router)
app.include_router(admin.router)
app.include_router(members.router)


def _depends_on(dependant, target) -> bool:
    for dep in dependant.dependencies:
        if dep.call is target or _depends_on(dep, target):
            return True
    return False


def audit_routes():
    from fastapi.routing import APIRoute
    from .auth import get_current_member

    for route in app.routes:
        if isinstance(route, APIRoute) and route.path.startswith("/api"):
            if not _depends_on(route.dependant, get_current_member):
                raise RuntimeError(f"Route {route.path} missing authentication")


audit_routes()
