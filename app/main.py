"""
GitHub Automation Engine - rule-driven automation for issues and pull requests.

Features:
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
- Rule management, manual execution and a GitHub webhook receiver
"""
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .logging import setup_logging, get_logger, SERVICE_NAME
from .api.automation_router import router as automation_router
from .api.errors import register_exception_handlers
from .api.rules_router import router as rules_router
from .api.webhooks_router import router as webhooks_router
from .dependencies import VERSION, get_github_client, get_metrics, get_rule_store
from .middleware import CorrelationIdMiddleware, MetricsMiddleware
from .health import HealthChecker

# Initialize configuration
settings = get_settings()

# Setup logging
setup_logging(json_output=settings.LOG_JSON, service_name=SERVICE_NAME)
logger = get_logger()

# Initialize metrics
metrics = get_metrics()

# Initialize health checker against the configured rule store
health_checker = HealthChecker(get_rule_store().backend, service_name=SERVICE_NAME, version=VERSION)

# Create FastAPI app
app = FastAPI(
    title="GitHub Automation Engine",
    version=VERSION,
    description="Condition/action automation rules for GitHub issues and pull requests",
)

# Starlette runs the last added middleware first, so correlation IDs are bound before metrics
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Include API routes
app.include_router(rules_router)
app.include_router(automation_router)
app.include_router(webhooks_router)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe - comprehensive health check.

    Checks:
    - Rule store backend
    - Disk space availability
    - Memory availability

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready
    """
    logger.debug("health_check_readiness")
    metrics.update_system_metrics()
    result = await health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(content=result, status_code=status_code)


@app.on_event("startup")
async def startup_event():
    """Log service startup."""
    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        rule_store_backend=type(get_rule_store().backend).__name__,
        rule_count=get_rule_store().count(),
        github_configured=get_github_client().is_configured(),
        webhook_secret_configured=bool(settings.GITHUB_WEBHOOK_SECRET),
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Log service shutdown and release the GitHub HTTP client."""
    logger.info("service_stopping")
    await get_github_client().close()
    backend = get_rule_store().backend
    if hasattr(backend, "close"):
        backend.close()
    metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=True,
    )
