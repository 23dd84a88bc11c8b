import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from nlu_studio.server.config import Settings, get_settings
from nlu_studio.server.container import ServiceContainer, build_container
from nlu_studio.server.exceptions import (
    InvalidInputError,
    NLUServerError,
    PredictionError,
    get_http_status_code,
)
from nlu_studio.server.middleware import (
    FixedWindowRateLimiter,
    install_auth_middleware,
    install_body_limit_middleware,
    install_error_middleware,
    install_rate_limit_middleware,
    install_request_logging_middleware,
)
from nlu_studio.server.models import ErrorResponse
from nlu_studio.server.monitoring import install_monitoring_middleware
from nlu_studio.server.routes import PREDICT_PATH_PREFIX, router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    container: ServiceContainer = app.state.container
    settings = container.settings
    logger.info(f"Starting {settings.app_name} v{settings.app_version}...")

    monitoring_task: Optional[asyncio.Task] = None
    interval = settings.monitoring_interval_seconds
    if interval:
        monitoring_task = asyncio.create_task(container.monitor.run(interval))

    logger.info(f"{settings.app_name} is ready at http://{settings.host}:{settings.port}/")
    yield

    logger.info(f"Shutting down {settings.app_name}...")
    try:
        if monitoring_task is not None:
            monitoring_task.cancel()
            try:
                await monitoring_task
            except asyncio.CancelledError:
                pass
        await container.train_service.shutdown()
        logger.info(f"{settings.app_name} shutdown complete.")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


def create_application(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or (container.settings if container else get_settings())
    container = container or build_container(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Training and prediction server for natural language understanding models.",
        version=settings.app_version,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        lifespan=lifespan,
    )
    app.state.container = container

    # Middleware added last runs first. Effective order, outermost first:
    # CORS, body limit, request logging, monitoring, error wrapping,
    # proxy headers, rate limit, auth.
    if settings.auth_token:
        install_auth_middleware(app, tokens=(settings.auth_token, settings.admin_token))

    if settings.limit > 0:
        install_rate_limit_middleware(
            app,
            rate_limiter=FixedWindowRateLimiter(settings.limit, settings.limit_window_seconds),
        )

    if settings.reverse_proxy:
        trusted_hosts = [host.strip() for host in settings.reverse_proxy.split(",") if host.strip()]
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=trusted_hosts)

    install_error_middleware(app, debug=settings.debug)
    install_monitoring_middleware(app, monitor=container.monitor)
    install_request_logging_middleware(app)
    install_body_limit_middleware(app, limit_bytes=settings.body_limit_bytes)

    # Must stay outermost so preflight requests are answered before auth.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    app.include_router(router, tags=["nlu"])

    # --- Exception Handlers ---
    @app.exception_handler(NLUServerError)
    async def nlu_server_error_handler(request: Request, exc: NLUServerError):
        status_code = get_http_status_code(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        message = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in errors
        )
        error = InvalidInputError(message or "Invalid request")
        if request.url.path.startswith(PREDICT_PATH_PREFIX):
            error = PredictionError(error.message)
        return JSONResponse(
            status_code=get_http_status_code(error),
            content=ErrorResponse(
                error=error.message,
                error_code=error.error_code,
                detail=errors,
            ).model_dump(mode="json"),
        )

    return app


def main():
    """Main entry point for running the server."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    logger.info(f"Starting {settings.app_name} on {settings.host}:{settings.port}")
    uvicorn.run(
        create_application(settings),
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
