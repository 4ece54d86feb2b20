import logging
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .config import settings
from .errors import (
    ActionExecutionError,
    AuthorizationError,
    ConflictError,
    EngineError,
    NotFoundError,
    StateError,
    ValidationError,
    WorkflowError,
)
from .logs import configure_logging
from .routers import approvals, catalog, definitions, delegations

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Approval Workflow API", version="0.1.0", openapi_url="/openapi.json")

app.include_router(catalog.router, prefix="/api/v0", tags=["catalog"])
app.include_router(definitions.router, prefix="/api/v0", tags=["definitions"])
app.include_router(approvals.router, prefix="/api/v0", tags=["approvals"])
app.include_router(delegations.router, prefix="/api/v0", tags=["delegations"])

STATUS_BY_ERROR = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    StateError: 409,
    AuthorizationError: 403,
    ActionExecutionError: 502,
    EngineError: 500,
}


@app.get("/api/v0/healthz")
def healthz():
    return {"status": "ok", "env": settings.app_env}


@app.middleware("http")
async def add_request_id_header(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    resp: Response = await call_next(request)
    resp.headers.setdefault("X-Request-Id", request_id)
    return resp


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    status_code = STATUS_BY_ERROR.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": exc.code, "message": exc.message, "details": exc.details}},
    )


@app.exception_handler(Exception)
async def default_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL",
                "message": "Unhandled error",
                "details": [{"path": "", "msg": str(exc)}],
            }
        },
    )
