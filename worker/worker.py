import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import uvicorn

from api.main import create_app
from common.config import WorkerConfig
from common.job_schema import OutcomeStatus
from common.logging_config import setup_logging
from common.pipeline import JobPipeline

logger = logging.getLogger("worker")

EXIT_CODES = {
    OutcomeStatus.SUCCESS: 0,
    OutcomeStatus.PROCESSING_FAILURE: 1,
    OutcomeStatus.BAD_REQUEST: 2,
}


def run_once(config: WorkerConfig, object_key: str) -> int:
    """Processes a single raw object and returns a process exit code."""
    pipeline = JobPipeline.from_config(config)
    pipeline.staging.ensure_directories()
    outcome = asyncio.run(pipeline.run({"name": object_key}))
    logger.info(f"{outcome.status.value}: {outcome.message}")
    return EXIT_CODES[outcome.status]


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Video processing worker")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=None, help="defaults to $PORT or 3000")
    parser.add_argument("--once", metavar="NAME", help="process one raw object by name and exit")
    args = parser.parse_args(argv)

    config = WorkerConfig.from_env()
    setup_logging("video-worker", config.log_level, config.log_dir)

    if args.once is not None:
        return run_once(config, args.once)

    port = args.port or config.port
    logger.info("Worker started...")
    uvicorn.run(create_app(config), host=args.host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
