from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from medrecords.api.v1.api_router import v1_router
from medrecords.api.v1.errors import ApiError, api_error_exception_handler
from medrecords.core.observability.correlation import CorrelationMiddleware, get_correlation_id
from medrecords.core.observability.ingestion_logging import compact_error
from medrecords.core.observability.logger_config import configure_structlog
from medrecords.core.settings import settings
from medrecords.infrastructure.container import ServiceContainer

configure_structlog()
logger = structlog.get_logger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service_container = container or ServiceContainer()
        app.state.container = service_container
        await service_container.startup()
        try:
            yield
        finally:
            await service_container.shutdown()

    app = FastAPI(
        title="Medical Records Ingestion API",
        description="Attaches medical records and scanned documents to existing patients.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationMiddleware)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(
            "request_contract_breach",
            endpoint=str(request.url.path),
            validation_errors=exc.errors(),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "code": "INVALID_REQUEST",
                    "message": "Request validation failed",
                    "details": jsonable_errors(exc),
                    "request_id": get_correlation_id(),
                }
            },
        )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return await api_error_exception_handler(request, exc)

    app.include_router(v1_router)

    @app.get("/health")
    def health_check():
        """
        Service liveness check.
        """
        return {"status": "ok", "service": "medical-records-ingestion", "api_v1": "available"}

    @app.get("/health/ready")
    async def readiness_check(request: Request):
        """
        Probes the Record Store with a one-row read of the patients table.
        """
        container = request.app.state.container
        try:
            rows = await container.record_store.ping(container.settings.PATIENTS_TABLE)
        except Exception as exc:
            logger.warning("readiness_probe_failed", error=compact_error(exc))
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unavailable", "record_store": "unreachable", "error": compact_error(exc)},
            )
        return {"status": "ok", "record_store": "reachable", "rows_seen": rows}

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(item.get("loc", ())), "msg": item.get("msg"), "type": item.get("type")}
        for item in exc.errors()
    ]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.API_PORT)
