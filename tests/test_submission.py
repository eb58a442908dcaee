import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import BASE_LAT, BASE_LON, load_review, make_incident, make_photo
from intake.config import SubmissionConfig
from intake.errors import ReportCreationError, UploadError, WorkflowStateError
from intake.models.incident import DamageType, PassabilityLevel, RoadRef, WorkflowStep
from intake.services.submission import (
    PHOTO_DATA_EXPIRED,
    CreatedReport,
    SubmissionOrchestrator,
    build_report_payload,
)


def make_collaborators(failing_photo_ids=(), failing_payload=None):
    uploader = MagicMock()
    creator = MagicMock()

    async def upload_photo(photo, blob):
        await asyncio.sleep(0)
        if photo.id in failing_photo_ids:
            raise UploadError(f"Photo upload failed: connection reset ({photo.id})")
        return f"key-{photo.id}"

    async def create_report(payload):
        await asyncio.sleep(0)
        if failing_payload is not None and failing_payload(payload):
            raise ReportCreationError("Report creation failed (500)")
        first_key = payload["mediaKeys"][0]
        return CreatedReport(id=f"rep-{first_key}", report_number=f"RN-{first_key}")

    uploader.upload_photo = AsyncMock(side_effect=upload_photo)
    creator.create_report = AsyncMock(side_effect=create_report)
    return uploader, creator


def three_incidents():
    return [
        make_incident("I1", [make_photo("p1", BASE_LAT, BASE_LON, 1.0), make_photo("p2", BASE_LAT, BASE_LON, 2.0)]),
        make_incident("I2", [make_photo("p3", BASE_LAT, BASE_LON, 3.0)]),
        make_incident("I3", [make_photo("p4", BASE_LAT, BASE_LON, 4.0)]),
    ]


@pytest.mark.asyncio
async def test_one_failed_upload_does_not_affect_others(workflow):
    await load_review(workflow, three_incidents())
    uploader, creator = make_collaborators(failing_photo_ids={"p3"})
    orchestrator = SubmissionOrchestrator(workflow, uploader, creator)

    summary = await orchestrator.submit_all()

    results = {r.incident_id: r for r in summary.results}
    assert results["I1"].success and results["I1"].report_id == "rep-key-p1"
    assert results["I3"].success and results["I3"].report_id == "rep-key-p4"
    assert not results["I2"].success
    assert "connection reset" in results["I2"].error
    assert summary.succeeded == 2 and summary.failed == 1
    assert workflow.step == WorkflowStep.COMPLETE
    assert creator.create_report.await_count == 2


@pytest.mark.asyncio
async def test_outcome_does_not_depend_on_order(workflow):
    incidents = three_incidents()
    await load_review(workflow, list(reversed(incidents)))
    uploader, creator = make_collaborators(failing_photo_ids={"p3"})

    summary = await SubmissionOrchestrator(workflow, uploader, creator).submit_all()

    outcome = {r.incident_id: r.success for r in summary.results}
    assert outcome == {"I1": True, "I2": False, "I3": True}


@pytest.mark.asyncio
async def test_report_creation_failure_is_recorded(workflow):
    await load_review(workflow, three_incidents())
    uploader, creator = make_collaborators(failing_payload=lambda p: p["mediaKeys"] == ["key-p4"])

    summary = await SubmissionOrchestrator(workflow, uploader, creator).submit_all()

    failed = [r for r in summary.results if not r.success]
    assert [r.incident_id for r in failed] == ["I3"]
    assert failed[0].error == "Report creation failed (500)"


@pytest.mark.asyncio
async def test_unexpected_error_is_isolated(workflow):
    await load_review(workflow, three_incidents())
    uploader, creator = make_collaborators()

    async def flaky(photo, blob):
        if photo.id == "p4":
            raise RuntimeError("socket exploded")
        return f"key-{photo.id}"

    uploader.upload_photo = AsyncMock(side_effect=flaky)

    summary = await SubmissionOrchestrator(workflow, uploader, creator).submit_all()

    results = {r.incident_id: r for r in summary.results}
    assert results["I1"].success and results["I2"].success
    assert results["I3"].error == "socket exploded"


@pytest.mark.asyncio
async def test_progress_is_monotone_and_ends_at_100(workflow):
    await load_review(workflow, three_incidents()[:1])
    uploader, creator = make_collaborators()
    seen = []
    original = workflow.record_progress

    async def spy(incident_id, percent, generation):
        await original(incident_id, percent, generation)
        seen.append(workflow.get_incident(incident_id).upload_progress)

    workflow.record_progress = spy

    await SubmissionOrchestrator(workflow, uploader, creator).submit_all()

    assert seen == sorted(seen)
    assert seen[0] == 10
    assert 50 in seen
    assert seen[-1] == 100


@pytest.mark.asyncio
async def test_failed_incident_keeps_partial_progress(workflow):
    await load_review(workflow, three_incidents())
    uploader, creator = make_collaborators(failing_photo_ids={"p2"})

    await SubmissionOrchestrator(workflow, uploader, creator).submit_all()

    # p1 went up, p2 failed
    assert workflow.get_incident("I1").upload_progress == 30
    assert workflow.get_incident("I2").upload_progress == 100


@pytest.mark.asyncio
async def test_retry_only_touches_requested_incidents(workflow):
    await load_review(workflow, three_incidents())
    uploader, creator = make_collaborators(failing_photo_ids={"p3"})
    orchestrator = SubmissionOrchestrator(workflow, uploader, creator)
    await orchestrator.submit_all()
    first_result = workflow.get_incident("I1").result

    fixed_uploader, fixed_creator = make_collaborators()
    orchestrator.uploader = fixed_uploader
    orchestrator.creator = fixed_creator
    summary = await orchestrator.retry(["I2", "unknown"])

    assert summary.succeeded == 3 and summary.failed == 0
    assert workflow.get_incident("I1").result is first_result
    assert fixed_creator.create_report.await_count == 1
    assert workflow.step == WorkflowStep.COMPLETE


@pytest.mark.asyncio
async def test_retry_uses_edited_draft(workflow):
    await load_review(workflow, three_incidents())
    uploader, creator = make_collaborators(failing_photo_ids={"p3"})
    orchestrator = SubmissionOrchestrator(workflow, uploader, creator)
    await orchestrator.submit_all()

    await workflow.update_incident("I2", description="edited after failure")
    orchestrator.uploader, orchestrator.creator = make_collaborators()
    await orchestrator.retry(["I2"])

    payload = orchestrator.creator.create_report.await_args.args[0]
    assert payload["description"] == "edited after failure"


@pytest.mark.asyncio
async def test_missing_photo_bytes_fail_the_incident(workflow):
    await load_review(workflow, three_incidents())
    workflow.blobs.release("p3")
    uploader, creator = make_collaborators()

    summary = await SubmissionOrchestrator(workflow, uploader, creator).submit_all()

    results = {r.incident_id: r for r in summary.results}
    assert results["I2"].error == PHOTO_DATA_EXPIRED
    assert results["I1"].success and results["I3"].success
    uploaded = [c.args[0].id for c in uploader.upload_photo.await_args_list]
    assert "p3" not in uploaded


@pytest.mark.asyncio
async def test_concurrent_submission(workflow):
    incidents = [
        make_incident(f"I{n}", [make_photo(f"p{n}-{i}", BASE_LAT, BASE_LON) for i in range(2)])
        for n in range(6)
    ]
    await load_review(workflow, incidents)
    uploader, creator = make_collaborators(failing_photo_ids={"p4-1"})
    orchestrator = SubmissionOrchestrator(workflow, uploader, creator, SubmissionConfig(concurrency=3))

    summary = await orchestrator.submit_all()

    assert summary.succeeded == 5
    assert [r.incident_id for r in summary.results if not r.success] == ["I4"]


@pytest.mark.asyncio
async def test_submit_requires_review(workflow):
    uploader, creator = make_collaborators()
    orchestrator = SubmissionOrchestrator(workflow, uploader, creator)

    with pytest.raises(WorkflowStateError):
        await orchestrator.submit_all()
    uploader.upload_photo.assert_not_awaited()


@pytest.mark.asyncio
async def test_reset_during_submission_leaves_new_session_alone(workflow):
    await load_review(workflow, [make_incident("OLD", [make_photo("old0", BASE_LAT, BASE_LON)])])
    gates = {"old0": asyncio.Event(), "new0": asyncio.Event()}
    started = []
    uploader = MagicMock()
    creator = MagicMock()

    async def upload_photo(photo, blob):
        started.append(photo.id)
        await gates[photo.id].wait()
        return f"key-{photo.id}"

    async def create_report(payload):
        return CreatedReport(id=f"rep-{payload['mediaKeys'][0]}")

    uploader.upload_photo = AsyncMock(side_effect=upload_photo)
    creator.create_report = AsyncMock(side_effect=create_report)
    orchestrator = SubmissionOrchestrator(workflow, uploader, creator)

    old_run = asyncio.create_task(orchestrator.submit_all())
    while "old0" not in started:
        await asyncio.sleep(0)
    await workflow.reset()
    await load_review(workflow, [make_incident("NEW", [make_photo("new0", BASE_LAT, BASE_LON)])])
    new_run = asyncio.create_task(orchestrator.submit_all())
    while "new0" not in started:
        await asyncio.sleep(0)

    gates["old0"].set()
    old_summary = await old_run

    assert old_summary.results == []
    assert workflow.step == WorkflowStep.SUBMIT
    assert workflow.get_incident("NEW").result is None
    creator.create_report.assert_not_awaited()

    gates["new0"].set()
    summary = await new_run

    assert workflow.step == WorkflowStep.COMPLETE
    assert summary.succeeded == 1 and summary.failed == 0
    assert workflow.get_incident("NEW").result.report_id == "rep-key-new0"
    creator.create_report.assert_awaited_once()


@pytest.mark.asyncio
async def test_concurrent_retries_of_one_incident_create_one_report(workflow):
    await load_review(workflow, three_incidents())
    uploader, creator = make_collaborators(failing_photo_ids={"p3"})
    orchestrator = SubmissionOrchestrator(workflow, uploader, creator)
    await orchestrator.submit_all()

    gate = asyncio.Event()
    fixed_uploader, fixed_creator = make_collaborators()

    async def slow_create(payload):
        await gate.wait()
        return CreatedReport(id="rep-retry")

    fixed_creator.create_report = AsyncMock(side_effect=slow_create)
    orchestrator.uploader, orchestrator.creator = fixed_uploader, fixed_creator

    retries = asyncio.gather(orchestrator.retry(["I2"]), orchestrator.retry(["I2"]))
    while not fixed_creator.create_report.called:
        await asyncio.sleep(0)
    gate.set()
    await retries

    fixed_creator.create_report.assert_awaited_once()
    assert workflow.get_incident("I2").result.report_id == "rep-retry"
    assert not workflow.is_in_flight("I2")


class TestBuildReportPayload:
    def test_full_incident(self):
        inc = make_incident("I1", [make_photo("p1", 6.9, 79.8, timestamp=0.0)])
        inc.damage_type = DamageType.FLOODING
        inc.passability_level = PassabilityLevel.THREE_WHEELER
        inc.selected_road = RoadRef(id="r7", road_number="A004", road_class="A")
        inc.province = "Western"
        inc.details = {"is_single_lane": True, "needs_safety_barriers": False, "blocked_distance_meters": 12.5}

        payload = build_report_payload(inc, ["k1"])

        assert payload["latitude"] == 6.9 and payload["longitude"] == 79.8
        assert payload["damageType"] == "flooding"
        assert payload["passabilityLevel"] == "3wheeler"
        assert payload["roadId"] == "r7"
        assert payload["roadClass"] == "A"
        assert payload["isSingleLane"] is True
        assert payload["blockedDistanceMeters"] == 12.5
        assert payload["mediaKeys"] == ["k1"]
        assert payload["incidentDate"] == "1970-01-01T00:00:00+00:00"

    def test_unset_optional_fields_are_omitted(self):
        inc = make_incident("I1", [make_photo("p1")])

        payload = build_report_payload(inc, ["k1"])

        assert "latitude" not in payload
        assert "province" not in payload
        assert "incidentDate" not in payload
        assert payload["damageType"] is None
        assert payload["locationPickedManually"] is False
