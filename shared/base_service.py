"""
Base service class for token bridge services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from contextlib import asynccontextmanager
from typing import Dict
import time
import os

from shared.config import BaseConfig
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import BridgeException, InternalError


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: BaseConfig):
        self.service_name = service_name
        self.config = config
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()

        if self.config.enable_tracing:
            from shared.tracing import configure_tracing
            configure_tracing(
                service_name,
                self.config.otel_exporter,
                self.config.enable_console_tracing,
                app=self.app
            )

        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            yield
            await self.shutdown()

        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Token Bridge - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        origins = self.config.allowed_origin_list
        if origins:
            self.app.add_middleware(
                CORSMiddleware,
                allow_origins=origins,
                allow_credentials="*" not in origins,
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["*"],
            )

        @self.app.middleware("http")
        async def add_request_context(request: Request, call_next):
            start_time = time.time()
            request_id = set_request_id(request.headers.get("X-Request-ID"))

            try:
                response = await call_next(request)
                duration = time.time() - start_time

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )

                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )

                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            dependencies = await self._check_dependencies()
            healthy = all(status == "ok" for status in dependencies.values())
            self.metrics.record_health_check("ok" if healthy else "error")

            body = {
                "service": self.service_name,
                "status": "ok" if healthy else "degraded",
                "uptime_seconds": self._get_uptime(),
                "dependencies": dependencies,
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }
            if not healthy:
                return JSONResponse(status_code=503, content=body)
            return body

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.export(),
                media_type=CONTENT_TYPE_LATEST
            )

        @self.app.exception_handler(BridgeException)
        async def bridge_exception_handler(request: Request, exc: BridgeException):
            """Render a classified error with its own status code."""
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "Request failed",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                details=exc.details
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response(
                    include_details=not self.config.is_production
                ).model_dump(exclude_none=True)
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            error = InternalError(details={"exception": repr(exc)})
            return JSONResponse(
                status_code=500,
                content=error.to_response(
                    include_details=not self.config.is_production
                ).model_dump(exclude_none=True)
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    async def shutdown(self):
        """Release resources on application shutdown. Override in subclasses."""
        return None

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
