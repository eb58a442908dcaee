import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile

from core.dependencies import get_extractor, get_reporting_client, get_workflow
from intake.models.incident import NON_NULLABLE_FIELDS, RoadRef, WorkflowStep
from intake.models.photo import GeoPoint
from intake.schema import (
    IncidentUpdateRequest,
    MovePhotoRequest,
    MovePhotoResponse,
    OrphanIncidentRequest,
    OrphanIncidentResponse,
    PhotoUploadResponse,
    RetryRequest,
    RoadSchema,
    SubmitTaskResponse,
    WorkflowResponse,
)
from intake.services.enrichment import enrich_road
from intake.services.formatters import format_workflow
from intake.services.metadata_extractor import MetadataExtractor, SourceFile
from intake.services.reporting_client import ReportingClient
from intake.services.submission import SubmissionOrchestrator
from intake.workflow import IntakeWorkflow

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_PHOTOS = 50


def get_orchestrator(
    workflow: IntakeWorkflow = Depends(get_workflow),
    client: ReportingClient = Depends(get_reporting_client),
) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(workflow, uploader=client, creator=client)


@router.get("", response_model=WorkflowResponse)
async def get_state(workflow: IntakeWorkflow = Depends(get_workflow)):
    return format_workflow(workflow.snapshot(), workflow.blobs)


@router.post("/photos", response_model=PhotoUploadResponse)
async def upload_photos(
    files: List[UploadFile] = File(...),
    workflow: IntakeWorkflow = Depends(get_workflow),
    extractor: MetadataExtractor = Depends(get_extractor),
):
    if workflow.step != WorkflowStep.SELECT:
        raise HTTPException(status_code=409, detail=f"Cannot add photos in step '{workflow.step.value}'")
    if len(workflow.photos) + len(files) > MAX_PHOTOS:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_PHOTOS} photos per batch")

    sources = []
    for f in files:
        sources.append(SourceFile(await f.read(), f.filename or "photo.jpg", f.content_type or "image/jpeg"))

    extracted = await extractor.extract_batch(sources, on_progress=workflow.set_extraction_progress)
    added = await workflow.add_photos(extracted)
    return PhotoUploadResponse(
        added=added,
        with_gps=sum(1 for photo, _ in extracted if photo.has_gps),
        total=len(workflow.photos),
    )


@router.post("/group", response_model=WorkflowResponse)
async def group_photos(workflow: IntakeWorkflow = Depends(get_workflow)):
    await workflow.group()
    return format_workflow(workflow.snapshot(), workflow.blobs)


@router.post("/photos/{photo_id}/move", response_model=MovePhotoResponse)
async def move_photo(photo_id: str, req: MovePhotoRequest, workflow: IntakeWorkflow = Depends(get_workflow)):
    result = await workflow.move_photo(photo_id, req.target_incident_id)
    return MovePhotoResponse(moved=result.moved, reason=result.reason)


@router.delete("/photos/{photo_id}", status_code=204)
async def remove_photo(photo_id: str, workflow: IntakeWorkflow = Depends(get_workflow)):
    if not await workflow.remove_photo(photo_id):
        raise HTTPException(status_code=404, detail="Photo not found")


@router.patch("/incidents/{incident_id}", response_model=WorkflowResponse)
async def update_incident(
    incident_id: str,
    req: IncidentUpdateRequest,
    workflow: IntakeWorkflow = Depends(get_workflow),
):
    fields = req.model_dump(exclude_unset=True)
    nulls = sorted(k for k, v in fields.items() if v is None and k in NON_NULLABLE_FIELDS)
    if nulls:
        raise HTTPException(status_code=422, detail=f"Fields cannot be null: {', '.join(nulls)}")
    if "centroid" in fields:
        fields["centroid"] = GeoPoint(**fields["centroid"]) if fields["centroid"] else None
    if "selected_road" in fields:
        fields["selected_road"] = RoadRef(**fields["selected_road"]) if fields["selected_road"] else None

    if not await workflow.update_incident(incident_id, **fields):
        raise HTTPException(status_code=404, detail="Incident not found")
    return format_workflow(workflow.snapshot(), workflow.blobs)


@router.post("/orphans/incident", response_model=OrphanIncidentResponse)
async def create_incident_from_orphans(req: OrphanIncidentRequest, workflow: IntakeWorkflow = Depends(get_workflow)):
    location = GeoPoint(lat=req.location.lat, lon=req.location.lon)
    incident_ids = await workflow.create_incident_from_orphans(req.photo_ids, location, req.location_name)
    if not incident_ids:
        raise HTTPException(status_code=404, detail="None of the photos are orphans")
    return OrphanIncidentResponse(incident_ids=incident_ids)


@router.post("/incidents/{incident_id}/enrich-road", response_model=Optional[RoadSchema])
async def enrich_incident_road(
    incident_id: str,
    workflow: IntakeWorkflow = Depends(get_workflow),
    client: ReportingClient = Depends(get_reporting_client),
):
    road = await enrich_road(workflow, incident_id, client)
    if road is None:
        return None
    return RoadSchema(id=road.id, road_number=road.road_number, road_class=road.road_class, name=road.name)


@router.post("/submit", response_model=SubmitTaskResponse, status_code=202)
async def submit_incidents(
    background_tasks: BackgroundTasks,
    workflow: IntakeWorkflow = Depends(get_workflow),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
):
    """
    Submit every incident in the background. Poll ``GET /intake`` for progress.
    """
    if workflow.step != WorkflowStep.REVIEW:
        raise HTTPException(status_code=409, detail=f"Cannot submit in step '{workflow.step.value}'")
    if not workflow.incidents:
        raise HTTPException(status_code=409, detail="No incidents to submit")

    logger.info(f"📥 Submission accepted for {len(workflow.incidents)} incidents.")
    background_tasks.add_task(orchestrator.submit_all)
    return SubmitTaskResponse(incident_count=len(workflow.incidents))


@router.post("/retry", response_model=WorkflowResponse)
async def retry_incidents(
    req: RetryRequest,
    workflow: IntakeWorkflow = Depends(get_workflow),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
):
    if workflow.step != WorkflowStep.COMPLETE:
        raise HTTPException(status_code=409, detail="Retry is only possible after submission completed")
    await orchestrator.retry(req.incident_ids)
    return format_workflow(workflow.snapshot(), workflow.blobs)


@router.post("/reset", response_model=WorkflowResponse)
async def reset_workflow(workflow: IntakeWorkflow = Depends(get_workflow)):
    await workflow.reset()
    return format_workflow(workflow.snapshot(), workflow.blobs)
