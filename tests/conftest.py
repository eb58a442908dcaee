"""
Pytest configuration and fixtures
"""
import sys
from pathlib import Path
from typing import Optional

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from intake.models.incident import Incident, earliest_timestamp
from intake.models.photo import GeoPoint, Photo, PhotoBlob
from intake.utils.geo import centroid
from intake.workflow import IntakeWorkflow

BASE_LAT = 6.9000
BASE_LON = 79.8000


def make_photo(photo_id: str, lat: Optional[float] = None, lon: Optional[float] = None,
               timestamp: Optional[float] = None) -> Photo:
    gps = GeoPoint(lat, lon) if lat is not None and lon is not None else None
    return Photo(id=photo_id, original_name=f"{photo_id}.jpg", gps=gps, timestamp=timestamp)


def make_incident(incident_id: str, photos) -> Incident:
    return Incident(
        id=incident_id,
        photos=list(photos),
        centroid=centroid(p.gps for p in photos),
        incident_date=earliest_timestamp(list(photos)),
    )


@pytest.fixture
def workflow():
    return IntakeWorkflow()


async def load_review(workflow: IntakeWorkflow, incidents, orphans=()):
    """Put a workflow into review with the given drafts, with bytes for every photo."""
    for inc in incidents:
        for p in inc.photos:
            workflow.blobs.put(p.id, PhotoBlob(payload=f"bytes-{p.id}".encode()))
    for p in orphans:
        workflow.blobs.put(p.id, PhotoBlob(payload=f"bytes-{p.id}".encode()))
    await workflow.initialize(incidents, list(orphans))
    return workflow
