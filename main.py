#!/usr/bin/env python3
"""
Main entry point for hydra_router application

An HTTP service that routes AI requests across providers by task profile,
admitting them against per-model rate windows and recovering from failures
with bounded retries and fallback chains.
"""

import os
import uvicorn
from pathlib import Path

from hydra_router.utils.logging import setup_logging
from hydra_router.api.app import create_app

# Setup logging
logger = setup_logging()


def main():
    """Main entry point for the application"""

    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    log_dir.mkdir(exist_ok=True)

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 10006))
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    logger.info("Starting hydra_router",
               host=host, port=port, log_level=log_level)

    app = create_app()

    # Single worker: the usage ledger lives in this process
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=log_level,
        workers=1,
        reload=False
    )


if __name__ == "__main__":
    main()
