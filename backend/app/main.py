import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings, require_jwt_secret
from app.routes.admin import router as admin_router
from app.routes.company_resumes import router as company_resumes_router
from app.routes.internal_resumes import router as internal_resumes_router
from app.routes.resumes import router as resumes_router
from app.services.errors import ResumeAccessError

logger = logging.getLogger(__name__)

require_jwt_secret()

app = FastAPI(title="Resume Access Service")
logger.info(
    "Startup config: RATE_LIMIT_ENABLED=%s access_limiter=%s upload_tokens=%s SCAN_AUTO_CLEAN=%s",
    settings.RATE_LIMIT_ENABLED,
    settings.ACCESS_RATE_LIMIT_BACKEND,
    settings.UPLOAD_TOKEN_BACKEND,
    settings.SCAN_AUTO_CLEAN,
)

_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "STORAGE_UNAVAILABLE",
}


def _error_code(status_code: int) -> str:
    return _ERROR_CODE_BY_STATUS.get(int(status_code), "HTTP_ERROR")


@app.exception_handler(ResumeAccessError)
def resume_access_error_handler(request: Request, exc: ResumeAccessError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=exc.headers())


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException):  # noqa: ARG001
    detail = exc.detail
    message: str
    details: dict | None = None
    code = _error_code(exc.status_code)

    if isinstance(detail, str):
        message = detail
    elif isinstance(detail, dict):
        msg = detail.get("message")
        message = msg if isinstance(msg, str) and msg else "Request failed"
        det = detail.get("details")
        details = det if isinstance(det, dict) else None
        err = detail.get("error")
        code = err if isinstance(err, str) and err else code
    else:
        message = str(detail) if detail is not None else "Request failed"

    payload: dict = {"error": code, "message": message}
    if details:
        payload["details"] = details
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):  # noqa: ARG001
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Invalid request payload",
            "details": {"errors": exc.errors()},
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(resumes_router)
app.include_router(company_resumes_router)
app.include_router(internal_resumes_router)
app.include_router(admin_router)

@app.get("/health")
def health_check():
    return {"status": "ok"}
