import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from intake.config import SubmissionConfig
from intake.errors import SubmissionError, UploadError
from intake.models.incident import Incident, SubmissionResult, SubmissionSummary
from intake.models.photo import Photo, PhotoBlob
from intake.utils.performance import PerformanceMonitor
from intake.workflow import IntakeWorkflow

logger = logging.getLogger(__name__)

PHOTO_DATA_EXPIRED = (
    "Photo data expired. Please go back and re-add your photos. "
    "(This happens when the draft was restored after a restart.)"
)


@dataclass(frozen=True)
class CreatedReport:
    id: str
    report_number: Optional[str] = None


class MediaUploader(ABC):
    @abstractmethod
    async def upload_photo(self, photo: Photo, blob: PhotoBlob) -> str:
        """Upload one photo and return its storage key. Raises UploadError."""
        raise NotImplementedError()


class ReportCreator(ABC):
    @abstractmethod
    async def create_report(self, payload: dict) -> CreatedReport:
        """Create a report from the payload. Raises ReportCreationError."""
        raise NotImplementedError()


def build_report_payload(incident: Incident, media_keys: List[str]) -> dict:
    """Report creation request body for one incident."""
    details = incident.details
    road = incident.selected_road
    centroid = incident.centroid
    incident_date = (
        datetime.fromtimestamp(incident.incident_date, tz=timezone.utc).isoformat()
        if incident.incident_date is not None else None
    )
    payload = {
        "latitude": centroid.lat if centroid else None,
        "longitude": centroid.lon if centroid else None,
        "province": incident.province,
        "district": incident.district,
        "locationName": incident.location_name or None,
        "damageType": incident.damage_type.value if incident.damage_type else None,
        "passabilityLevel": incident.passability_level.value if incident.passability_level else None,
        "roadId": road.id if road else None,
        "roadNumberInput": incident.road_number_input or None,
        "roadClass": road.road_class if road else None,
        "isSingleLane": bool(details.get("is_single_lane")),
        "needsSafetyBarriers": bool(details.get("needs_safety_barriers")),
        "blockedDistanceMeters": details.get("blocked_distance_meters"),
        "incidentDetails": details,
        "description": incident.description or None,
        "mediaKeys": media_keys,
        "locationPickedManually": incident.location_picked_manually,
        "incidentDate": incident_date,
    }
    # Unset optional fields are left out rather than sent as null
    required = {"damageType", "mediaKeys", "isSingleLane", "needsSafetyBarriers", "locationPickedManually"}
    return {k: v for k, v in payload.items() if v is not None or k in required}


class SubmissionOrchestrator:
    """
    Submits every incident of a workflow independently: upload its photos,
    then create the report. One incident failing never affects another.
    """

    def __init__(
        self,
        workflow: IntakeWorkflow,
        uploader: MediaUploader,
        creator: ReportCreator,
        config: Optional[SubmissionConfig] = None,
    ):
        self.workflow = workflow
        self.uploader = uploader
        self.creator = creator
        self.config = config or workflow.config.submission

    async def submit_all(self) -> SubmissionSummary:
        batch = await self.workflow.begin_submission()
        logger.info(f"Submitting {len(batch.incident_ids)} incidents (concurrency={self.config.concurrency}).")

        with PerformanceMonitor("submission") as monitor:
            await self._run(batch.incident_ids, batch.generation)
        logger.info(monitor.report(count=len(batch.incident_ids)))

        summary = await self.workflow.finish_submission(batch.generation)
        if summary is None:
            # The workflow was reset while this run was going
            return SubmissionSummary(results=[])
        logger.info(f"Submission finished: {summary.succeeded} succeeded, {summary.failed} failed.")
        return summary

    async def retry(self, incident_ids: Iterable[str]) -> SubmissionSummary:
        """
        Re-submit the given incidents from their current drafts. Other results
        stay as they are, and incidents with an attempt still running are skipped.
        """
        known = [
            iid for iid in incident_ids
            if self.workflow.get_incident(iid) is not None and not self.workflow.is_in_flight(iid)
        ]
        logger.info(f"Retrying {len(known)} incidents.")
        await self._run(known, self.workflow.generation)
        return self.workflow.summary()

    async def _run(self, incident_ids: List[str], generation: int) -> List[SubmissionResult]:
        semaphore = asyncio.Semaphore(max(1, self.config.concurrency))

        async def guarded(incident_id: str) -> Optional[SubmissionResult]:
            async with semaphore:
                return await self.submit_incident(incident_id, generation)

        results = await asyncio.gather(*(guarded(iid) for iid in incident_ids))
        return [r for r in results if r is not None]

    async def submit_incident(self, incident_id: str, generation: int) -> Optional[SubmissionResult]:
        """Run one attempt. Returns None when the attempt was skipped or abandoned."""
        incident = await self.workflow.start_attempt(incident_id, generation)
        if incident is None:
            return None

        try:
            result = await self._attempt(incident, generation)
            if result is not None:
                await self.workflow.record_result(result, generation)
            return result
        finally:
            self.workflow.end_attempt(incident_id, generation)

    async def _attempt(self, incident: Incident, generation: int) -> Optional[SubmissionResult]:
        incident_id = incident.id
        try:
            await self.workflow.record_progress(incident_id, 10, generation)
            keys = await self._upload_photos(incident, generation)
            if keys is None or not self.workflow.is_current(generation):
                logger.info(f"Abandoned incident {incident_id}: the workflow was reset.")
                return None
            await self.workflow.record_progress(incident_id, 50, generation)

            report = await self.creator.create_report(build_report_payload(incident, keys))
            await self.workflow.record_progress(incident_id, 100, generation)
        except SubmissionError as e:
            logger.error(f"Incident {incident_id} failed: {e}")
            return SubmissionResult(incident_id=incident_id, success=False, error=str(e))
        except Exception as e:
            logger.exception(f"Incident {incident_id} failed unexpectedly")
            return SubmissionResult(incident_id=incident_id, success=False, error=str(e) or "Unknown error")

        logger.info(f"Incident {incident_id} submitted as report {report.id}.")
        return SubmissionResult(
            incident_id=incident_id,
            success=True,
            report_id=report.id,
            report_number=report.report_number,
        )

    async def _upload_photos(self, incident: Incident, generation: int) -> Optional[List[str]]:
        blobs = self.workflow.blobs
        if blobs.missing(incident.photo_ids):
            raise UploadError(PHOTO_DATA_EXPIRED)

        keys = []
        total = len(incident.photos)
        for done, photo in enumerate(incident.photos, start=1):
            if not self.workflow.is_current(generation):
                return None
            blob = blobs.get(photo.id)
            if blob is None:
                raise UploadError(PHOTO_DATA_EXPIRED)
            keys.append(await self.uploader.upload_photo(photo, blob))
            await self.workflow.record_progress(incident.id, 10 + round(done / total * 40), generation)
        return keys
