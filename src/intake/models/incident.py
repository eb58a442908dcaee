from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from intake.models.photo import GeoPoint, Photo

# Version of the open ``details`` side table. Bump when documented keys change
# meaning; adding a new optional key does not need a bump.
DETAILS_VERSION = 1

# Documented keys of ``Incident.details``:
#   is_single_lane (bool)          only one lane is still usable
#   needs_safety_barriers (bool)   site needs barriers before traffic resumes
#   blocked_distance_meters (float | None)
DEFAULT_DETAILS = {
    "is_single_lane": False,
    "needs_safety_barriers": False,
    "blocked_distance_meters": None,
}


class WorkflowStep(str, Enum):
    SELECT = "select"
    REVIEW = "review"
    SUBMIT = "submit"
    COMPLETE = "complete"


class DamageType(str, Enum):
    TREE_FALL = "tree_fall"
    BRIDGE_COLLAPSE = "bridge_collapse"
    LANDSLIDE = "landslide"
    FLOODING = "flooding"
    ROAD_BREAKAGE = "road_breakage"
    WASHOUT = "washout"
    COLLAPSE = "collapse"
    BLOCKAGE = "blockage"
    OTHER = "other"


class PassabilityLevel(str, Enum):
    UNPASSABLE = "unpassable"
    FOOT = "foot"
    BIKE = "bike"
    THREE_WHEELER = "3wheeler"
    CAR = "car"
    BUS = "bus"
    TRUCK = "truck"


@dataclass(frozen=True)
class RoadRef:
    id: str
    road_number: str
    road_class: str
    name: Optional[str] = None


@dataclass(frozen=True)
class SubmissionResult:
    incident_id: str
    success: bool
    report_id: Optional[str] = None
    report_number: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Incident:
    id: str
    photos: List[Photo]
    centroid: Optional[GeoPoint] = None
    incident_date: Optional[float] = None  # earliest photo timestamp

    # Location
    province: Optional[str] = None
    district: Optional[str] = None
    location_name: str = ""
    road_number_input: str = ""
    selected_road: Optional[RoadRef] = None
    location_picked_manually: bool = False

    # Classification
    damage_type: Optional[DamageType] = None
    passability_level: Optional[PassabilityLevel] = None

    description: str = ""
    is_complete: bool = False
    details: dict = field(default_factory=lambda: dict(DEFAULT_DETAILS))

    # Submission state, not persisted
    upload_progress: int = 0
    result: Optional[SubmissionResult] = None

    @property
    def photo_ids(self) -> List[str]:
        return [p.id for p in self.photos]

    @property
    def has_required_fields(self) -> bool:
        """Minimum fields a reviewer must fill before the draft is worth sending."""
        return self.damage_type is not None and self.centroid is not None


LOCATION_FIELDS = (
    "centroid",
    "province",
    "district",
    "location_name",
    "road_number_input",
    "selected_road",
    "location_picked_manually",
)
CLASSIFICATION_FIELDS = ("damage_type", "passability_level")
EDITABLE_FIELDS = frozenset(LOCATION_FIELDS + CLASSIFICATION_FIELDS + ("description", "is_complete", "details"))
# Editable fields that have a value even when unset
NON_NULLABLE_FIELDS = frozenset(
    ("location_name", "road_number_input", "location_picked_manually", "description", "is_complete", "details")
)


def earliest_timestamp(photos: List[Photo]) -> Optional[float]:
    timestamps = [p.timestamp for p in photos if p.timestamp is not None]
    return min(timestamps) if timestamps else None


@dataclass(frozen=True)
class MoveResult:
    moved: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.moved


@dataclass(frozen=True)
class SubmissionSummary:
    results: List[SubmissionResult]

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)
