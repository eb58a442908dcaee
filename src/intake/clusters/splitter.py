import logging
from typing import List

from intake.models.ids import new_incident_id
from intake.models.incident import Incident, earliest_timestamp
from intake.models.photo import Photo
from intake.utils.geo import centroid

logger = logging.getLogger(__name__)

MAX_PHOTOS_PER_INCIDENT = 5


def chronological_chunks(photos: List[Photo], cap: int = MAX_PHOTOS_PER_INCIDENT) -> List[List[Photo]]:
    """Sort by capture time (missing first) and cut into runs of at most ``cap``."""
    if cap < 1:
        raise ValueError(f"cap must be positive, got {cap}")
    ordered = sorted(photos, key=lambda p: p.sort_timestamp)
    return [ordered[i:i + cap] for i in range(0, len(ordered), cap)]


class ClusterSplitter:
    def __init__(self, cap: int = MAX_PHOTOS_PER_INCIDENT):
        self.cap = cap

    def split(self, cluster: List[Photo]) -> List[Incident]:
        incidents = []
        for chunk in chronological_chunks(cluster, self.cap):
            incidents.append(
                Incident(
                    id=new_incident_id(),
                    photos=chunk,
                    centroid=centroid(p.gps for p in chunk),
                    incident_date=earliest_timestamp(chunk),
                )
            )
        if len(incidents) > 1:
            logger.debug(f"Split cluster of {len(cluster)} photos into {len(incidents)} incidents.")
        return incidents
