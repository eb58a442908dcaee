from typing import List, Optional

from pydantic import BaseModel, Field

from intake.models.incident import DamageType, PassabilityLevel, WorkflowStep


class GeoPointSchema(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class RoadSchema(BaseModel):
    id: str
    road_number: str
    road_class: str
    name: Optional[str] = None


class PhotoResponse(BaseModel):
    id: str
    original_name: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    timestamp: Optional[float] = None
    has_data: bool = Field(description="False when the bytes were lost and the photo must be re-added")


class SubmissionResultResponse(BaseModel):
    incident_id: str
    success: bool
    report_id: Optional[str] = None
    report_number: Optional[str] = None
    error: Optional[str] = None


class IncidentResponse(BaseModel):
    id: str
    photos: List[PhotoResponse]
    centroid: Optional[GeoPointSchema] = None
    incident_date: Optional[float] = None
    province: Optional[str] = None
    district: Optional[str] = None
    location_name: str = ""
    road_number_input: str = ""
    selected_road: Optional[RoadSchema] = None
    location_picked_manually: bool = False
    damage_type: Optional[DamageType] = None
    passability_level: Optional[PassabilityLevel] = None
    description: str = ""
    is_complete: bool = False
    has_required_fields: bool = False
    details: dict = {}
    upload_progress: int = 0
    result: Optional[SubmissionResultResponse] = None


class WorkflowResponse(BaseModel):
    step: WorkflowStep
    current_index: int
    photo_count: int
    extraction_progress: float
    incidents: List[IncidentResponse]
    orphans: List[PhotoResponse]
    ready_count: int
    succeeded: int
    failed: int


class IncidentUpdateRequest(BaseModel):
    centroid: Optional[GeoPointSchema] = None
    province: Optional[str] = None
    district: Optional[str] = None
    location_name: Optional[str] = None
    road_number_input: Optional[str] = None
    selected_road: Optional[RoadSchema] = None
    location_picked_manually: Optional[bool] = None
    damage_type: Optional[DamageType] = None
    passability_level: Optional[PassabilityLevel] = None
    description: Optional[str] = None
    is_complete: Optional[bool] = None
    details: Optional[dict] = None


class MovePhotoRequest(BaseModel):
    target_incident_id: str


class MovePhotoResponse(BaseModel):
    moved: bool
    reason: Optional[str] = None


class OrphanIncidentRequest(BaseModel):
    photo_ids: List[str] = Field(min_length=1)
    location: GeoPointSchema
    location_name: str = ""


class OrphanIncidentResponse(BaseModel):
    incident_ids: List[str]


class RetryRequest(BaseModel):
    incident_ids: List[str] = Field(min_length=1)


class PhotoUploadResponse(BaseModel):
    added: int
    with_gps: int
    total: int


class SubmitTaskResponse(BaseModel):
    status: str = "processing"
    message: str = "Submission started in background."
    incident_count: int
