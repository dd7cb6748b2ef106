import uuid
import time
import json
import logging
import threading
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.exc import IntegrityError, NoResultFound
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.csrf import check_csrf, requires_csrf
from app.core.errors import ErrorCode, default_code, error_body
from app.core.queue import enqueue_with_lock
from app.core.rate_limit import api_rate_limit
from app.core.request_meta import request_id as _request_id
from app.routers import admin, auth, editor, files, health, lessons, progress, quiz, topics
from app.services.file_cleanup_jobs import cleanup_unconfirmed_files_job

API_PREFIX = "/api"


def _validation_details(exc: RequestValidationError) -> list[dict]:
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        out.append({"field": ".".join(loc) or None, "message": str(err.get("msg") or ""), "type": err.get("type")})
    return out


def create_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = FastAPI(title="E-Learning API", version="1.0.0")

    logger = logging.getLogger("elearn")

    logging.getLogger("botocore").setLevel(logging.WARNING)

    allow_origins = [o.strip() for o in str(settings.cors_allow_origins or "").split(",") if o.strip()]
    if "*" in allow_origins:
        raise RuntimeError("CORS_ALLOW_ORIGINS must not include '*' when allow_credentials=true")

    is_prod = settings.is_prod

    def _parse_csv(value: str) -> list[str]:
        return [x.strip() for x in str(value or "").split(",") if x.strip()]

    allow_methods_raw = str(settings.cors_allow_methods or "*").strip()
    allow_headers_raw = str(settings.cors_allow_headers or "*").strip()
    if is_prod:
        if allow_methods_raw == "*":
            allow_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
        else:
            allow_methods = _parse_csv(allow_methods_raw)

        if allow_headers_raw == "*":
            allow_headers = ["authorization", "content-type", "x-request-id", "x-csrf-token"]
        else:
            allow_headers = _parse_csv(allow_headers_raw)
    else:
        allow_methods = ["*"] if allow_methods_raw == "*" else _parse_csv(allow_methods_raw)
        allow_headers = ["*"] if allow_headers_raw == "*" else _parse_csv(allow_headers_raw)

    def _error(status_code: int, code: str, message: str, request: Request, *, details=None, headers=None):
        return JSONResponse(
            status_code=int(status_code),
            content=error_body(code, message, request_id=_request_id(request), details=details),
            headers=headers,
        )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        t0 = time.perf_counter()
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = rid
        status_code: int | None = None
        try:
            if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
                origin = (request.headers.get("origin") or "").strip()
                if origin and origin not in allow_origins:
                    response = _error(403, ErrorCode.FORBIDDEN, "Invalid origin", request)
                elif requires_csrf(request) and (csrf_error := check_csrf(request)) is not None:
                    response = _error(403, ErrorCode.CSRF_INVALID, csrf_error, request)
                else:
                    response = await call_next(request)
            else:
                response = await call_next(request)
            status_code = int(getattr(response, "status_code", 0) or 0)
        except Exception:
            status_code = 500
            raise
        finally:
            dur_ms = int((time.perf_counter() - t0) * 1000)
            path = request.url.path
            if not path.startswith("/health"):
                logger.info(
                    json.dumps(
                        {
                            "ts": datetime.now(timezone.utc).isoformat(),
                            "rid": rid,
                            "user_id": getattr(request.state, "user_id", None),
                            "method": request.method,
                            "path": path,
                            "status": status_code,
                            "duration_ms": dur_ms,
                        },
                        ensure_ascii=False,
                    )
                )
        response.headers["X-Request-ID"] = rid

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Permissions-Policy", "camera=(), microphone=(), geolocation=()")
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
        response.headers.setdefault("Cross-Origin-Resource-Policy", "same-origin")
        if is_prod:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        headers = getattr(exc, "headers", None)
        if isinstance(detail, dict):
            return _error(
                exc.status_code,
                str(detail.get("code") or default_code(exc.status_code)),
                str(detail.get("message") or "Request failed"),
                request,
                details=detail.get("details"),
                headers=headers,
            )
        if exc.status_code == 404 and detail == "Not Found":
            # raised by the router itself when nothing matched
            return _error(404, ErrorCode.NOT_FOUND, f"Route {request.method} {request.url.path} not found", request)
        return _error(exc.status_code, default_code(exc.status_code), str(detail or "Request failed"), request, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error(400, ErrorCode.VALIDATION_ERROR, "Validation failed", request, details=_validation_details(exc))

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        text = str(getattr(exc, "orig", exc) or "").lower()
        logger.info("integrity error: %s", text)
        if "unique" in text or "duplicate" in text:
            return _error(409, ErrorCode.ALREADY_EXISTS, "Resource already exists", request)
        if "foreign key" in text:
            return _error(400, ErrorCode.VALIDATION_ERROR, "Invalid reference", request)
        return _error(400, ErrorCode.BAD_REQUEST, "Constraint violation", request)

    @app.exception_handler(NoResultFound)
    async def no_result_handler(request: Request, exc: NoResultFound):
        return _error(404, ErrorCode.NOT_FOUND, "Resource not found", request)

    @app.exception_handler(JWTError)
    async def jwt_error_handler(request: Request, exc: JWTError):
        if isinstance(exc, ExpiredSignatureError):
            return _error(401, ErrorCode.TOKEN_EXPIRED, "Token expired", request)
        return _error(401, ErrorCode.TOKEN_INVALID, "Invalid token", request)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled exception", extra={"rid": _request_id(request)})
        message = "Internal server error" if is_prod else (str(exc) or exc.__class__.__name__)
        return _error(500, ErrorCode.INTERNAL_ERROR, message, request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=allow_methods,
        allow_headers=allow_headers,
    )

    app.include_router(health.router)
    for api_router in (auth, topics, lessons, editor, quiz, progress, files, admin):
        app.include_router(api_router.router, prefix=API_PREFIX, dependencies=[api_rate_limit])

    def _start_files_cleanup_scheduler() -> None:
        interval_seconds = max(60, int(settings.uploads_cleanup_interval_minutes) * 60)

        def _tick() -> None:
            try:
                enqueue_with_lock(
                    cleanup_unconfirmed_files_job,
                    lock_key="locks:files_cleanup",
                    lock_ttl=max(60, interval_seconds - 5),
                    ttl_hours=int(settings.uploads_unconfirmed_ttl_hours),
                )
            except Exception:
                logger.warning("files cleanup scheduler tick failed", exc_info=True)
            finally:
                t = threading.Timer(interval_seconds, _tick)
                t.daemon = True
                t.start()

        t0 = threading.Timer(10, _tick)
        t0.daemon = True
        t0.start()

    @app.on_event("startup")
    async def _startup_tasks() -> None:
        if settings.enable_inprocess_scheduler:
            _start_files_cleanup_scheduler()

    return app

app = create_app()
