import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from common.config import WorkerConfig
from common.errors import JobValidationError
from common.intake import decode_push_envelope
from common.job_schema import PipelineOutcome
from common.pipeline import JobPipeline

logger = logging.getLogger(__name__)


def create_app(config: Optional[WorkerConfig] = None, pipeline: Optional[JobPipeline] = None) -> FastAPI:
    """Builds the app. Serve directly with `uvicorn --factory api.main:create_app`."""
    config = config or WorkerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Built here so a bad storage config fails the boot rather than the import.
        if app.state.pipeline is None:
            app.state.pipeline = JobPipeline.from_config(config)
        app.state.pipeline.staging.ensure_directories()
        logger.info(f"Video Processing Service listening on port {config.port}")
        yield

    app = FastAPI(title="Video Processing Service", lifespan=lifespan)
    app.state.config = config
    app.state.pipeline = pipeline

    # ---------- Endpoints ----------

    @app.get("/", response_class=PlainTextResponse)
    def home():
        return "Hello! I'm working."

    @app.post("/process-video", response_class=PlainTextResponse)
    async def process_video(request: Request):
        try:
            body = await request.json()
            payload = decode_push_envelope(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            outcome = PipelineOutcome.bad_request("body is not valid JSON")
        except JobValidationError as e:
            outcome = PipelineOutcome.bad_request(str(e))
        else:
            outcome = await request.app.state.pipeline.run(payload)

        return PlainTextResponse(outcome.message, status_code=outcome.http_status)

    return app

