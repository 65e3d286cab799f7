"""
Application lifespan management for FastAPI
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from ..core.config import ConfigManager
from ..core.engine import OrchestrationEngine
from ..core.usage_ledger import UsageLedger
from ..utils.logging import setup_logging
from ..utils.transaction_logger import TransactionLogger

logger = setup_logging()

# Single engine reference - initialized during lifespan
engine: Optional[OrchestrationEngine] = None


def build_engine_from_env() -> OrchestrationEngine:
    """Construct an engine from environment settings"""
    config_dir = os.getenv("HYDRA_CONFIG_DIR", "config")
    usage_dir = os.getenv("HYDRA_USAGE_DIR", "usage_states")
    log_dir = os.getenv("LOG_DIR", "logs")

    transaction_logging_enabled = os.getenv("TRANSACTION_LOGGING", "false").lower() == "true"
    transaction_logger = TransactionLogger(enabled=transaction_logging_enabled, log_dir=log_dir)
    logger.info("Transaction logging initialized",
               enabled=transaction_logging_enabled,
               log_dir=log_dir)

    return OrchestrationEngine(
        config_manager=ConfigManager(config_dir=config_dir),
        ledger=UsageLedger(state_dir=usage_dir),
        transaction_logger=transaction_logger,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    global engine

    logger.info("Starting hydra_router application")

    try:
        engine = getattr(app.state, "engine_override", None) or build_engine_from_env()
        await engine.start()
        logger.info("hydra_router application started successfully")

    except Exception as e:
        logger.error("Failed to start application", error=str(e))
        raise

    yield

    logger.info("Shutting down hydra_router application")

    try:
        await engine.stop()
        logger.info("hydra_router application shutdown complete")
    except Exception as e:
        logger.error("Error during shutdown", error=str(e))
    finally:
        engine = None


def get_engine() -> OrchestrationEngine:
    """Get the engine owned by the running application"""
    return engine
