"""
FastAPI scaffolding shared by query cache services.
"""

import os
import time
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

from shared.config import CacheSettings, get_settings
from shared.errors import CacheLayerException
from shared.logging import configure_logging, get_logger


SERVICE_VERSION = "1.0.0"

# Health and metrics requests are logged at debug level
QUIET_PATHS = frozenset({"/health", "/metrics"})


class BaseService:
    """FastAPI app with health, metrics, request logging and error mapping.

    Each service owns a ``CollectorRegistry`` so several services (or test
    instances) can live in one process without metric name clashes.
    Subclasses add routes and override ``_check_dependencies``.
    """

    def __init__(self, service_name: str, settings: Optional[CacheSettings] = None):
        self.service_name = service_name
        self.config = settings or get_settings()
        self.registry = CollectorRegistry()
        self.started_at = time.time()

        configure_logging(service_name, self.config.log_level, self.config.json_logs)
        self.logger = get_logger(f"query_cache.{service_name}")

        self.request_count = Counter(
            "http_requests_total",
            "HTTP requests by route template and status",
            ["method", "route", "status_code"],
            registry=self.registry
        )
        self.request_latency = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency by route template",
            ["method", "route"],
            registry=self.registry
        )

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        docs_enabled = self.config.env == "local"
        return FastAPI(
            title=f"{self.service_name.replace('_', ' ').title()} Service",
            version=SERVICE_VERSION,
            docs_url="/docs" if docs_enabled else None,
            redoc_url="/redoc" if docs_enabled else None,
        )

    def _setup_middleware(self):
        """Record latency and status for every request."""

        @self.app.middleware("http")
        async def observe_request(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            elapsed = time.perf_counter() - started

            # Label by template so per-key paths do not explode cardinality
            route = getattr(request.scope.get("route"), "path", "unmatched")
            self.request_count.labels(request.method, route, str(response.status_code)).inc()
            self.request_latency.labels(request.method, route).observe(elapsed)

            log = self.logger.debug if request.url.path in QUIET_PATHS else self.logger.info
            log(
                "Request handled",
                method=request.method,
                route=route,
                status_code=response.status_code,
                duration_ms=round(elapsed * 1000, 2)
            )
            return response

    def _setup_routes(self):
        """Health, metrics and error mapping common to every service."""

        @self.app.get("/health")
        async def health():
            """Liveness plus dependency status; 503 when a dependency is down."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Dependency check raised", error=str(e), exc_info=True)
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            healthy = all(state == "ok" for state in dependencies.values())
            body = {
                "service": self.service_name,
                "status": "ok" if healthy else "degraded",
                "env": self.config.env,
                "uptime_seconds": round(time.time() - self.started_at, 3),
                "dependencies": dependencies,
                "version": SERVICE_VERSION,
                "commit": os.getenv("GIT_COMMIT", "unknown"),
            }
            if not healthy:
                self.logger.warning("Service degraded", dependencies=dependencies)
                return JSONResponse(status_code=503, content=body)
            return body

        @self.app.get("/metrics")
        async def metrics():
            """Prometheus exposition of this service's registry."""
            return Response(content=generate_latest(self.registry), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(CacheLayerException)
        async def cache_layer_error(request: Request, exc: CacheLayerException):
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "Request failed",
                path=request.url.path,
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

    async def _check_dependencies(self) -> Dict[str, str]:
        """Map of dependency name to "ok" or a failure state. Override in subclasses."""
        return {}

    def run(self):
        """Serve the app with uvicorn."""
        import uvicorn
        self.logger.info("Starting service", host=self.config.host, port=self.config.port)
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
