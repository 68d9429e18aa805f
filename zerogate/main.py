"""Main FastAPI application entry point."""
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from zerogate.api.routes import functions_router, router
from zerogate.config import get_settings
from zerogate.database import Base, engine
from zerogate.logging_config import configure_logging
from zerogate.middleware import CorsEnvelopeMiddleware, RequestIdMiddleware
# Import models to register them with SQLAlchemy Base
from zerogate.models.audit import AuditEntry  # noqa: F401
from zerogate.models.domain import Account, AssetListing, AuthIdentity, CredentialRecord, VerificationApplication  # noqa: F401
from zerogate.services.errors import ValidationFailed, WorkflowError

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    # Create database tables
    Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title=settings.app_name,
        description="Compliance workflow for tokenized real-world assets: KYB/KYC, credentials and asset review.",
        version="0.1.0",
    )

    # Added last runs first: CORS wraps everything, including request-id failures
    app.add_middleware(RequestIdMiddleware, header=settings.request_id_header)
    app.add_middleware(CorsEnvelopeMiddleware, expose_details=settings.expose_error_details)

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        body = {"error": exc.message, "kind": exc.kind}
        if isinstance(exc, ValidationFailed) and exc.errors:
            body["errors"] = exc.errors
        if exc.completed_steps:
            body["completedSteps"] = exc.completed_steps
        if exc.status_code >= 500:
            logger.error("request failed", extra={"path": request.url.path, "kind": exc.kind})
            if settings.expose_error_details:
                body["details"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(body, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return JSONResponse(
            {"error": "Invalid request body", "kind": ValidationFailed.kind, "errors": errors},
            status_code=400,
        )

    app.include_router(functions_router, prefix="/functions/v1", tags=["functions"])
    app.include_router(router, prefix="/api", tags=["ZeroGate"])

    # Health check
    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": settings.app_name}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
