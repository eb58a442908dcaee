import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from intake.blobs import PhotoBlobStore, release_preview
from intake.clusters.splitter import chronological_chunks
from intake.config import IntakeConfig
from intake.drafts.record import build_record, restore
from intake.drafts.store import DraftStore
from intake.errors import PersistenceError, WorkflowStateError
from intake.models.ids import new_incident_id
from intake.models.incident import (
    EDITABLE_FIELDS,
    NON_NULLABLE_FIELDS,
    Incident,
    MoveResult,
    SubmissionResult,
    SubmissionSummary,
    WorkflowStep,
    earliest_timestamp,
)
from intake.models.photo import GeoPoint, Photo, PhotoBlob
from intake.services.pipeline import GroupingPipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowSnapshot:
    step: WorkflowStep
    current_index: int
    incidents: Tuple[Incident, ...]
    orphans: Tuple[Photo, ...]
    photo_count: int
    extraction_progress: float


@dataclass(frozen=True)
class SubmissionBatch:
    """Incidents of one submission run, tied to the workflow session that started it."""
    generation: int
    incident_ids: List[str]


class IntakeWorkflow:
    """
    Owns the state of one bulk upload: selected photos, incident drafts,
    orphan pool and submission results.

    Every mutation runs under a single lock and swaps in freshly built lists,
    so a reader sees either the state before a mutation or after it.
    """

    def __init__(
        self,
        config: Optional[IntakeConfig] = None,
        blobs: Optional[PhotoBlobStore] = None,
        draft_store: Optional[DraftStore] = None,
    ):
        self.config = config or IntakeConfig()
        self.blobs = blobs if blobs is not None else PhotoBlobStore()
        self.draft_store = draft_store
        self.pipeline = GroupingPipeline(self.config.grouping)
        self._lock = asyncio.Lock()
        self._generation = 0
        self._set_initial_state()

    def _set_initial_state(self) -> None:
        # A new session: submission runs started before this point are stale
        self._generation += 1
        self._in_flight: Set[str] = set()
        self._step = WorkflowStep.SELECT
        self._current_index = 0
        self._photos: List[Photo] = []
        self._incidents: List[Incident] = []
        self._orphans: List[Photo] = []
        self._extraction_progress = 0.0

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def step(self) -> WorkflowStep:
        return self._step

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def incidents(self) -> Tuple[Incident, ...]:
        return tuple(self._incidents)

    @property
    def orphans(self) -> Tuple[Photo, ...]:
        return tuple(self._orphans)

    @property
    def photos(self) -> Tuple[Photo, ...]:
        return tuple(self._photos)

    @property
    def capacity(self) -> int:
        return self.config.grouping.max_photos_per_incident

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def is_in_flight(self, incident_id: str) -> bool:
        return incident_id in self._in_flight

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        return next((inc for inc in self._incidents if inc.id == incident_id), None)

    def snapshot(self) -> WorkflowSnapshot:
        return WorkflowSnapshot(
            step=self._step,
            current_index=self._current_index,
            incidents=tuple(self._incidents),
            orphans=tuple(self._orphans),
            photo_count=len(self._photos),
            extraction_progress=self._extraction_progress,
        )

    def results(self) -> List[SubmissionResult]:
        return [inc.result for inc in self._incidents if inc.result is not None]

    def summary(self) -> SubmissionSummary:
        return SubmissionSummary(results=self.results())

    def dangling_photo_ids(self) -> List[str]:
        """Photo ids referenced by the drafts whose bytes are not in this session."""
        referenced = [pid for inc in self._incidents for pid in inc.photo_ids]
        referenced.extend(p.id for p in self._orphans)
        return self.blobs.missing(referenced)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def set_extraction_progress(self, percent: float) -> None:
        self._extraction_progress = max(0.0, min(100.0, percent))

    async def add_photos(self, photos: Iterable[Tuple[Photo, PhotoBlob]]) -> int:
        items = list(photos)
        async with self._lock:
            try:
                self._require(WorkflowStep.SELECT, action="add photos")
            except WorkflowStateError:
                # Rejected blobs never reach the store, so nothing else would free their previews
                for _, blob in items:
                    release_preview(blob)
                raise
            added = []
            for photo, blob in items:
                self.blobs.put(photo.id, blob)
                added.append(photo)
            self._photos = self._photos + added
            logger.info(f"Added {len(added)} photos (total {len(self._photos)}).")
            return len(added)

    async def group(self) -> None:
        """Cluster the selected photos into incidents and move to review."""
        async with self._lock:
            self._require(WorkflowStep.SELECT, WorkflowStep.REVIEW, action="group photos")
            if not self._photos:
                raise WorkflowStateError("No photos selected")
            result = self.pipeline.run(list(self._photos))
            self._apply_groups(result.incidents, result.orphans)
            await self._persist()

    async def initialize(self, incidents: Sequence[Incident], orphans: Sequence[Photo]) -> None:
        async with self._lock:
            self._require(WorkflowStep.SELECT, WorkflowStep.REVIEW, action="initialize drafts")
            self._apply_groups(list(incidents), list(orphans))
            await self._persist()

    def _apply_groups(self, incidents: List[Incident], orphans: List[Photo]) -> None:
        if any(not inc.photos for inc in incidents):
            raise ValueError("Incidents must hold at least one photo")
        self._incidents = incidents
        self._orphans = orphans
        self._photos = [p for inc in incidents for p in inc.photos] + orphans
        self._current_index = 0
        self._step = WorkflowStep.REVIEW
        logger.info(f"Review started with {len(incidents)} incidents and {len(orphans)} orphans.")

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------
    async def move_photo(self, photo_id: str, target_incident_id: str) -> MoveResult:
        async with self._lock:
            self._require(WorkflowStep.REVIEW, action="move photos")

            photo, source_id = self._locate(photo_id)
            if photo is None:
                return MoveResult(False, "photo_not_found")
            target = self.get_incident(target_incident_id)
            if target is None:
                return MoveResult(False, "target_not_found")
            if source_id == target.id:
                return MoveResult(False, "already_in_target")
            if len(target.photos) >= self.capacity:
                logger.debug(f"Move of {photo_id} rejected: {target.id} is full.")
                return MoveResult(False, "target_full")

            incidents = []
            for inc in self._incidents:
                if inc.id == source_id:
                    remaining = [p for p in inc.photos if p.id != photo_id]
                    if not remaining:
                        logger.debug(f"Pruned empty incident {inc.id}.")
                        continue
                    inc = replace(inc, photos=remaining, incident_date=earliest_timestamp(remaining))
                elif inc.id == target.id:
                    grown = inc.photos + [photo]
                    inc = replace(inc, photos=grown, incident_date=earliest_timestamp(grown))
                incidents.append(inc)

            self._incidents = incidents
            self._orphans = [p for p in self._orphans if p.id != photo_id]
            self._clamp_index()
            await self._persist()
            return MoveResult(True)

    async def remove_photo(self, photo_id: str) -> bool:
        async with self._lock:
            self._require(WorkflowStep.SELECT, WorkflowStep.REVIEW, action="remove photos")

            photo, _ = self._locate(photo_id)
            if photo is None:
                photo = next((p for p in self._photos if p.id == photo_id), None)
            if photo is None:
                return False

            incidents = []
            for inc in self._incidents:
                if photo_id in inc.photo_ids:
                    remaining = [p for p in inc.photos if p.id != photo_id]
                    if not remaining:
                        logger.debug(f"Pruned empty incident {inc.id}.")
                        continue
                    inc = replace(inc, photos=remaining, incident_date=earliest_timestamp(remaining))
                incidents.append(inc)

            self._incidents = incidents
            self._orphans = [p for p in self._orphans if p.id != photo_id]
            self._photos = [p for p in self._photos if p.id != photo_id]
            self.blobs.release(photo_id)
            self._clamp_index()
            if self._step == WorkflowStep.REVIEW:
                await self._persist()
            return True

    async def update_incident(self, incident_id: str, **fields) -> bool:
        """
        Shallow-merge the given fields into an incident.

        Only field names and missing values are checked here. Whether the
        values make sense is up to the caller.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown incident fields: {sorted(unknown)}")
        nulls = sorted(name for name in NON_NULLABLE_FIELDS & set(fields) if fields[name] is None)
        if nulls:
            raise ValueError(f"Incident fields cannot be null: {nulls}")

        async with self._lock:
            self._require(WorkflowStep.REVIEW, WorkflowStep.COMPLETE, action="edit incidents")
            if self.get_incident(incident_id) is None:
                return False
            self._incidents = [
                replace(inc, **fields) if inc.id == incident_id else inc
                for inc in self._incidents
            ]
            await self._persist()
            return True

    async def create_incident_from_orphans(
        self,
        photo_ids: Sequence[str],
        location: GeoPoint,
        location_name: str = "",
    ) -> List[str]:
        """Turn selected orphans into incidents placed at a manually picked location."""
        async with self._lock:
            self._require(WorkflowStep.REVIEW, action="place orphans")
            wanted = set(photo_ids)
            selected = [p for p in self._orphans if p.id in wanted]
            if not selected:
                return []

            created = [
                Incident(
                    id=new_incident_id(),
                    photos=chunk,
                    centroid=location,
                    incident_date=earliest_timestamp(chunk),
                    location_name=location_name,
                    location_picked_manually=True,
                )
                for chunk in chronological_chunks(selected, self.capacity)
            ]
            self._incidents = self._incidents + created
            self._orphans = [p for p in self._orphans if p.id not in wanted]
            await self._persist()
            logger.info(f"Created {len(created)} incidents from {len(selected)} orphans.")
            return [inc.id for inc in created]

    async def set_current_index(self, index: int) -> int:
        async with self._lock:
            self._current_index = index
            self._clamp_index()
            await self._persist()
            return self._current_index

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    async def begin_submission(self) -> SubmissionBatch:
        async with self._lock:
            self._require(WorkflowStep.REVIEW, action="submit")
            if not self._incidents:
                raise WorkflowStateError("No incidents to submit")
            incomplete = sum(1 for inc in self._incidents if not inc.is_complete)
            if incomplete:
                logger.warning(f"Submitting with {incomplete} incidents not marked complete.")
            self._incidents = [replace(inc, upload_progress=0, result=None) for inc in self._incidents]
            self._step = WorkflowStep.SUBMIT
            await self._persist()
            return SubmissionBatch(self._generation, [inc.id for inc in self._incidents])

    async def start_attempt(self, incident_id: str, generation: int) -> Optional[Incident]:
        """
        Reset progress and result of one incident and return its current draft.

        Returns None when the run is stale (the workflow was reset since), the
        incident is gone, or another attempt for it is still running.
        """
        async with self._lock:
            if not self.is_current(generation):
                logger.info(f"Skipping {incident_id}: submission run belongs to a reset session.")
                return None
            self._require(WorkflowStep.SUBMIT, WorkflowStep.COMPLETE, action="start a submission attempt")
            if self.get_incident(incident_id) is None:
                return None
            if incident_id in self._in_flight:
                logger.warning(f"Skipping {incident_id}: an attempt is already in flight.")
                return None
            self._in_flight.add(incident_id)
            self._replace_incident(incident_id, upload_progress=0, result=None)
            return self.get_incident(incident_id)

    def end_attempt(self, incident_id: str, generation: int) -> None:
        if self.is_current(generation):
            self._in_flight.discard(incident_id)

    async def record_progress(self, incident_id: str, percent: int, generation: int) -> None:
        async with self._lock:
            if not self.is_current(generation):
                return
            inc = self.get_incident(incident_id)
            if inc is None:
                return
            percent = max(0, min(100, int(percent)))
            if percent > inc.upload_progress:
                self._replace_incident(incident_id, upload_progress=percent)

    async def record_result(self, result: SubmissionResult, generation: int) -> None:
        async with self._lock:
            if not self.is_current(generation):
                logger.info(f"Dropping result for {result.incident_id} from a reset session.")
                return
            self._require(WorkflowStep.SUBMIT, WorkflowStep.COMPLETE, action="record results")
            self._replace_incident(result.incident_id, result=result)

    async def finish_submission(self, generation: int) -> Optional[SubmissionSummary]:
        """Move to complete. Returns None for a stale run, which leaves the current session alone."""
        async with self._lock:
            if not self.is_current(generation):
                logger.info("Submission run from a reset session ended; step left unchanged.")
                return None
            self._require(WorkflowStep.SUBMIT, action="complete submission")
            self._step = WorkflowStep.COMPLETE
            await self._persist()
            return self.summary()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def reset(self) -> None:
        async with self._lock:
            released = self.blobs.release_all()
            self._set_initial_state()
            if self.draft_store is not None:
                try:
                    await self.draft_store.clear()
                except PersistenceError as e:
                    logger.warning(f"Failed to clear saved draft: {e}")
            logger.info(f"Workflow reset. Released {released} photo handles.")

    async def restore_draft(self) -> List[str]:
        """
        Load the saved draft, if any. Returns the ids of photos whose bytes are
        gone, so the caller can ask for them again.
        """
        if self.draft_store is None:
            return []
        try:
            record = await self.draft_store.load()
        except PersistenceError as e:
            logger.warning(f"Discarding unreadable draft: {e}")
            async with self._lock:
                self._set_initial_state()
            return []
        if record is None:
            return []

        restored = restore(record)
        step = restored.step
        if step == WorkflowStep.SUBMIT:
            # The attempt died with the previous process
            step = WorkflowStep.REVIEW
        async with self._lock:
            self._step = step
            self._current_index = restored.current_index
            self._incidents = restored.incidents
            self._orphans = restored.orphans
            self._photos = [p for inc in restored.incidents for p in inc.photos] + restored.orphans

        dangling = self.dangling_photo_ids()
        logger.info(f"Restored draft: step={self._step.value}, {len(self._incidents)} incidents.")
        if dangling:
            logger.warning(f"{len(dangling)} photos in the restored draft have no data and must be re-added.")
        return dangling

    # ------------------------------------------------------------------
    # Internals (call with the lock held)
    # ------------------------------------------------------------------
    def _require(self, *steps: WorkflowStep, action: str) -> None:
        if self._step not in steps:
            allowed = ", ".join(s.value for s in steps)
            raise WorkflowStateError(f"Cannot {action} in step '{self._step.value}' (allowed: {allowed})")

    def _locate(self, photo_id: str) -> Tuple[Optional[Photo], Optional[str]]:
        for inc in self._incidents:
            for p in inc.photos:
                if p.id == photo_id:
                    return p, inc.id
        for p in self._orphans:
            if p.id == photo_id:
                return p, None
        return None, None

    def _replace_incident(self, incident_id: str, **changes) -> None:
        self._incidents = [
            replace(inc, **changes) if inc.id == incident_id else inc
            for inc in self._incidents
        ]

    def _clamp_index(self) -> None:
        last = max(len(self._incidents) - 1, 0)
        self._current_index = min(max(self._current_index, 0), last)

    async def _persist(self) -> None:
        if self.draft_store is None:
            return
        try:
            record = build_record(self._step, self._current_index, self._incidents, self._orphans)
            await self.draft_store.save(record)
        except (PersistenceError, ValidationError, TypeError) as e:
            # The session goes on without a saved draft
            logger.warning(f"Draft not saved: {e}")
