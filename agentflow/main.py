"""
=============================================================================
Multi-Agent Workflow Engine - Main Application
=============================================================================

FastAPI application entry point.

SHARED STATE:
-------------
The Services bundle (semantic cache, cost ledger, AI invoker, tools) is
created ONCE at startup and stored in app.state, so every request shares the
same cache and ledger while each run still gets its own graph state.

Startup sequence:
1. Create services from settings
2. Build the LangGraph workflow and its executor
3. Attach predictive analytics to the cost ledger
4. Start REST API
=============================================================================
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentflow.analytics.predictive import PredictiveCostAnalytics
from agentflow.api.routes import router as api_router
from agentflow.config.langfuse import flush_traces, langfuse_enabled
from agentflow.config.settings import get_settings
from agentflow.graph.executor import WorkflowExecutor
from agentflow.services import create_services

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared services and the workflow executor."""
    settings = get_settings()

    logger.info("[STARTUP] Initializing multi-agent workflow engine...")

    services = create_services(settings)
    app.state.services = services

    app.state.executor = WorkflowExecutor(services)
    app.state.analytics = PredictiveCostAnalytics(services.ledger)

    logger.info(
        f"[STARTUP] Application ready! (langfuse={'enabled' if langfuse_enabled() else 'disabled'})"
    )

    yield

    logger.info("[SHUTDOWN] Shutting down...")
    flush_traces()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Multi-Agent Workflow Engine",
        description="Cost-aware multi-agent chat orchestration with semantic caching",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routes
    app.include_router(api_router)

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "agentflow.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
