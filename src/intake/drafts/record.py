"""
Serializable projection of the intake workflow.

Only metadata is persisted: photo ids, GPS and timestamps. Photo bytes and
previews belong to the session and are never written, so a rehydrated draft
may reference photos that can no longer be uploaded.
"""
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field

from intake.models.incident import (
    DETAILS_VERSION,
    DamageType,
    Incident,
    PassabilityLevel,
    RoadRef,
    WorkflowStep,
)
from intake.models.photo import GeoPoint, Photo

DRAFT_VERSION = 1


class GeoPointRecord(BaseModel):
    lat: float
    lon: float


class PhotoRecord(BaseModel):
    id: str
    original_name: str = ""
    gps: Optional[GeoPointRecord] = None
    timestamp: Optional[float] = None


class RoadRecord(BaseModel):
    id: str
    road_number: str
    road_class: str
    name: Optional[str] = None


class IncidentRecord(BaseModel):
    id: str
    centroid: Optional[GeoPointRecord] = None
    incident_date: Optional[float] = None
    province: Optional[str] = None
    district: Optional[str] = None
    location_name: str = ""
    road_number_input: str = ""
    selected_road: Optional[RoadRecord] = None
    location_picked_manually: bool = False
    damage_type: Optional[DamageType] = None
    passability_level: Optional[PassabilityLevel] = None
    description: str = ""
    is_complete: bool = False
    details_version: int = DETAILS_VERSION
    details: dict = Field(default_factory=dict)
    photos: List[PhotoRecord] = Field(default_factory=list)


class DraftRecord(BaseModel):
    version: int = DRAFT_VERSION
    step: WorkflowStep = WorkflowStep.SELECT
    current_index: int = 0
    incidents: List[IncidentRecord] = Field(default_factory=list)
    orphans: List[PhotoRecord] = Field(default_factory=list)


@dataclass
class RestoredDraft:
    step: WorkflowStep
    current_index: int
    incidents: List[Incident]
    orphans: List[Photo]

    @property
    def photo_ids(self) -> List[str]:
        ids = [pid for inc in self.incidents for pid in inc.photo_ids]
        ids.extend(p.id for p in self.orphans)
        return ids


def _point_record(point: Optional[GeoPoint]) -> Optional[GeoPointRecord]:
    return GeoPointRecord(lat=point.lat, lon=point.lon) if point else None


def _point(record: Optional[GeoPointRecord]) -> Optional[GeoPoint]:
    return GeoPoint(lat=record.lat, lon=record.lon) if record else None


def _photo_record(photo: Photo) -> PhotoRecord:
    return PhotoRecord(
        id=photo.id,
        original_name=photo.original_name,
        gps=_point_record(photo.gps),
        timestamp=photo.timestamp,
    )


def _photo(record: PhotoRecord) -> Photo:
    return Photo(
        id=record.id,
        original_name=record.original_name,
        gps=_point(record.gps),
        timestamp=record.timestamp,
    )


def build_record(
    step: WorkflowStep,
    current_index: int,
    incidents: List[Incident],
    orphans: List[Photo],
) -> DraftRecord:
    incident_records = []
    for inc in incidents:
        road = inc.selected_road
        incident_records.append(
            IncidentRecord(
                id=inc.id,
                centroid=_point_record(inc.centroid),
                incident_date=inc.incident_date,
                province=inc.province,
                district=inc.district,
                location_name=inc.location_name,
                road_number_input=inc.road_number_input,
                selected_road=RoadRecord(
                    id=road.id, road_number=road.road_number, road_class=road.road_class, name=road.name
                ) if road else None,
                location_picked_manually=inc.location_picked_manually,
                damage_type=inc.damage_type,
                passability_level=inc.passability_level,
                description=inc.description,
                is_complete=inc.is_complete,
                details=dict(inc.details),
                photos=[_photo_record(p) for p in inc.photos],
            )
        )
    return DraftRecord(
        step=step,
        current_index=current_index,
        incidents=incident_records,
        orphans=[_photo_record(p) for p in orphans],
    )


def restore(record: DraftRecord) -> RestoredDraft:
    incidents = []
    for rec in record.incidents:
        if not rec.photos:
            # An incident never exists without photos
            continue
        road = rec.selected_road
        incidents.append(
            Incident(
                id=rec.id,
                photos=[_photo(p) for p in rec.photos],
                centroid=_point(rec.centroid),
                incident_date=rec.incident_date,
                province=rec.province,
                district=rec.district,
                location_name=rec.location_name,
                road_number_input=rec.road_number_input,
                selected_road=RoadRef(
                    id=road.id, road_number=road.road_number, road_class=road.road_class, name=road.name
                ) if road else None,
                location_picked_manually=rec.location_picked_manually,
                damage_type=rec.damage_type,
                passability_level=rec.passability_level,
                description=rec.description,
                is_complete=rec.is_complete,
                details=dict(rec.details),
            )
        )
    current_index = min(max(record.current_index, 0), max(len(incidents) - 1, 0))
    return RestoredDraft(
        step=record.step,
        current_index=current_index,
        incidents=incidents,
        orphans=[_photo(p) for p in record.orphans],
    )
