from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.api import api_router
from core.config import configs
from core.logger import setup_logging
from intake.config import GroupingConfig, IntakeConfig, SubmissionConfig
from intake.drafts.store import JsonFileDraftStore
from intake.errors import WorkflowStateError
from intake.services.metadata_extractor import MetadataExtractor
from intake.services.reporting_client import ReportingClient
from intake.workflow import IntakeWorkflow

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🔧 Initializing intake workflow...")
    config = IntakeConfig(
        grouping=GroupingConfig(
            radius_m=configs.GROUPING_RADIUS_M,
            max_photos_per_incident=configs.MAX_PHOTOS_PER_INCIDENT,
        ),
        submission=SubmissionConfig(concurrency=configs.SUBMIT_CONCURRENCY),
    )
    workflow = IntakeWorkflow(config, draft_store=JsonFileDraftStore(configs.DRAFT_PATH))
    dangling = await workflow.restore_draft()
    if dangling:
        logger.warning(f"Restored draft references {len(dangling)} photos that must be re-added.")

    app.state.workflow = workflow
    app.state.extractor = MetadataExtractor(
        config.extraction,
        default_utc_offset_minutes=configs.EXIF_DEFAULT_UTC_OFFSET_MINUTES,
        preview_dir=configs.PREVIEW_DIR or None,
    )
    app.state.reporting_client = ReportingClient(configs.REPORTING_API_URL, timeout=configs.REQUEST_TIMEOUT_SECONDS)
    logger.info("✅ Intake workflow ready.")
    yield
    # Shutdown
    logger.info("🛑 Shutting down...")
    await app.state.reporting_client.aclose()
    workflow.blobs.release_all()

app = FastAPI(
    title=configs.PROJECT_NAME,
    description="Bulk photo intake: group photos into incident drafts and submit them",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS (Allow all for development env)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.exception_handler(WorkflowStateError)
async def workflow_state_error_handler(request: Request, exc: WorkflowStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {"message": "Bulk Incident Intake Running"}

@app.get("/health")
async def health_check():
    return {"status": "ok"}
