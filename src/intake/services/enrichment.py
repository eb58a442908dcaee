import logging
from abc import ABC, abstractmethod
from typing import Optional

from intake.errors import WorkflowStateError
from intake.models.incident import RoadRef
from intake.workflow import IntakeWorkflow

logger = logging.getLogger(__name__)


class RoadLookup(ABC):
    @abstractmethod
    async def lookup(self, text: str) -> Optional[RoadRef]:
        """Resolve free text (a road number or name) to a known road."""
        raise NotImplementedError()


async def enrich_road(workflow: IntakeWorkflow, incident_id: str, lookup: RoadLookup) -> Optional[RoadRef]:
    """
    Fill ``selected_road`` from the incident's typed road number.

    Optional enrichment: any failure is logged and the draft is left as is.
    """
    incident = workflow.get_incident(incident_id)
    if incident is None or not incident.road_number_input.strip():
        return None

    try:
        road = await lookup.lookup(incident.road_number_input.strip())
    except Exception as e:
        logger.warning(f"Road lookup failed for incident {incident_id}: {e}")
        return None

    if road is not None:
        try:
            await workflow.update_incident(incident_id, selected_road=road)
        except WorkflowStateError as e:
            logger.warning(f"Road for incident {incident_id} not applied: {e}")
            return None
        logger.debug(f"Incident {incident_id} matched road {road.road_number}.")
    return road
