from dataclasses import asdict
from typing import Optional

from intake.blobs import PhotoBlobStore
from intake.models.incident import Incident
from intake.models.photo import GeoPoint, Photo
from intake.schema import (
    GeoPointSchema,
    IncidentResponse,
    PhotoResponse,
    RoadSchema,
    SubmissionResultResponse,
    WorkflowResponse,
)
from intake.workflow import WorkflowSnapshot


def _to_point(point: Optional[GeoPoint]) -> Optional[GeoPointSchema]:
    return GeoPointSchema(lat=point.lat, lon=point.lon) if point else None


def _to_photo(p: Photo, blobs: PhotoBlobStore) -> PhotoResponse:
    return PhotoResponse(
        id=p.id,
        original_name=p.original_name,
        lat=p.gps.lat if p.gps else None,
        lon=p.gps.lon if p.gps else None,
        timestamp=p.timestamp,
        has_data=blobs.has(p.id),
    )


def format_incident(inc: Incident, blobs: PhotoBlobStore) -> IncidentResponse:
    road = inc.selected_road
    return IncidentResponse(
        id=inc.id,
        photos=[_to_photo(p, blobs) for p in inc.photos],
        centroid=_to_point(inc.centroid),
        incident_date=inc.incident_date,
        province=inc.province,
        district=inc.district,
        location_name=inc.location_name,
        road_number_input=inc.road_number_input,
        selected_road=RoadSchema(
            id=road.id, road_number=road.road_number, road_class=road.road_class, name=road.name
        ) if road else None,
        location_picked_manually=inc.location_picked_manually,
        damage_type=inc.damage_type,
        passability_level=inc.passability_level,
        description=inc.description,
        is_complete=inc.is_complete,
        has_required_fields=inc.has_required_fields,
        details=inc.details,
        upload_progress=inc.upload_progress,
        result=SubmissionResultResponse(**asdict(inc.result)) if inc.result else None,
    )


def format_workflow(snapshot: WorkflowSnapshot, blobs: PhotoBlobStore) -> WorkflowResponse:
    results = [inc.result for inc in snapshot.incidents if inc.result is not None]
    return WorkflowResponse(
        step=snapshot.step,
        current_index=snapshot.current_index,
        photo_count=snapshot.photo_count,
        extraction_progress=snapshot.extraction_progress,
        incidents=[format_incident(inc, blobs) for inc in snapshot.incidents],
        orphans=[_to_photo(p, blobs) for p in snapshot.orphans],
        ready_count=sum(1 for inc in snapshot.incidents if inc.is_complete),
        succeeded=sum(1 for r in results if r.success),
        failed=sum(1 for r in results if not r.success),
    )
