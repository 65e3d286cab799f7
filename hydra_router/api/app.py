"""
FastAPI application and endpoints for hydra_router
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.engine import OrchestrationEngine
from ..core.errors import ConfigInvalid
from ..models.schemas import (
    BatchExecuteRequest, BatchExecuteResponse, ExecuteRequest, ExecuteResponse
)
from .lifespan import lifespan, get_engine


def create_app(engine: Optional[OrchestrationEngine] = None) -> FastAPI:
    """Create and configure the FastAPI application

    Args:
        engine: Pre-built engine to serve instead of one built from the environment
    """
    app = FastAPI(
        title="Hydra AI Provider Router",
        description="Task-aware routing across AI providers with rate limiting, retries and fallback",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.engine_override = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConfigInvalid)
    async def config_invalid_handler(request: Request, exc: ConfigInvalid):
        return JSONResponse(
            status_code=503,
            content={"error": exc.kind.value, "violations": exc.violations},
        )

    # =============================================================================
    # EXECUTION ENDPOINTS
    # =============================================================================

    @app.post("/llm/execute", response_model=ExecuteResponse)
    async def execute(request: ExecuteRequest):
        """Route one request by task profile - WAITS FOR RESPONSE"""
        item = request.to_batch_request()
        result = await get_engine().select_and_execute(
            item.profile, item.messages, item.options, client_id=request.client_id
        )
        return ExecuteResponse.from_result(result)

    @app.post("/llm/batch", response_model=BatchExecuteResponse)
    async def execute_batch(request: BatchExecuteRequest):
        """Run many requests with bounded concurrency; results keep input order"""
        results = await get_engine().run_batch(
            [r.to_batch_request() for r in request.requests],
            max_concurrency=request.max_concurrency,
            deadline_seconds=request.deadline_seconds,
            client_id=request.client_id,
        )
        responses = [ExecuteResponse.from_result(r) for r in results]
        return BatchExecuteResponse(
            total=len(responses),
            succeeded=sum(1 for r in responses if r.success),
            results=responses,
        )

    # =============================================================================
    # STATUS AND MONITORING ENDPOINTS
    # =============================================================================

    @app.get("/health")
    async def health_check():
        """System health check"""
        engine = get_engine()
        return {
            "status": "healthy" if engine is not None and engine.config_manager.is_loaded else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "providers": engine.health_monitor.get_status() if engine is not None else {},
        }

    @app.get("/usage")
    async def get_usage():
        """Current rate limit windows per (provider, model)"""
        usage = get_engine().get_usage()
        transaction_logger = get_engine().transaction_logger
        if transaction_logger is not None:
            usage["transactions"] = await transaction_logger.get_stats_summary()
        return usage

    @app.get("/providers")
    async def get_providers():
        """All providers in priority order with model details and status"""
        return {"providers": get_engine().describe_providers()}

    @app.post("/config/reload")
    async def reload_config():
        """Reload the configuration document; the previous one stays active on failure"""
        try:
            registry = await get_engine().reload_config()
        except ConfigInvalid as e:
            return JSONResponse(
                status_code=422,
                content={"reloaded": False, "error": e.kind.value, "violations": e.violations},
            )
        return {
            "reloaded": True,
            "providers": [p.id for p in registry.providers_in_priority_order()],
        }

    return app
