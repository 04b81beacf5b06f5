from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenantgate.core.config import settings
from tenantgate.core.errors import AuthenticationFailure, SessionInvalid, TenantGateError
from tenantgate.core.observability import configure_logging, log_event
import tenantgate.models  # noqa: F401  # force model registration

from tenantgate.api.v1.auth import router as auth_router
from tenantgate.api.v1.members import router as members_router
from tenantgate.api.v1.menus import router as menus_router
from tenantgate.api.v1.roles import router as roles_router


async def _handle_domain_error(request: Request, exc: TenantGateError) -> JSONResponse:
    if isinstance(exc, (AuthenticationFailure, SessionInvalid)):
        # reason stays in the log; the body is identical for every reason
        log_event(
            "request_unauthenticated",
            path=request.url.path,
            code=exc.code,
            reason=getattr(exc, "reason", None),
        )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()}, headers=headers)


def create_application() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="TenantGate API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_BASE_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TenantGateError, _handle_domain_error)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "tenantgate"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(roles_router, prefix="/api/v1")
    app.include_router(members_router, prefix="/api/v1")
    app.include_router(menus_router, prefix="/api/v1")

    return app


app = create_application()
