import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from leadflow.api.routes import router as api_router
from leadflow.core.config import get_settings
from leadflow.errors import LeadflowError
from leadflow.logging import configure_logging
from leadflow.middleware.correlation_id import CorrelationIdMiddleware
from leadflow.middleware.request_logging import RequestLoggingMiddleware
from leadflow.otel import server_request_hook, setup_otel
from leadflow.pipeline.api import leadflow_error_handler


configure_logging()
logger = logging.getLogger("leadflow.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("system.started")
    yield


app = FastAPI(title="Leadflow API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(LeadflowError, leadflow_error_handler)
app.include_router(api_router)

setup_otel(get_settings())

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=server_request_hook)
