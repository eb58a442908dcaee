import logging
from dataclasses import dataclass
from typing import List, Optional

from intake.clusters.base import Clusterer
from intake.clusters.spatial import SpatialClusterer
from intake.clusters.splitter import ClusterSplitter
from intake.config import GroupingConfig
from intake.models.incident import Incident
from intake.models.photo import Photo
from intake.utils.performance import PerformanceMonitor

logger = logging.getLogger(__name__)


@dataclass
class GroupingResult:
    incidents: List[Incident]
    orphans: List[Photo]


class GroupingPipeline:
    """Turns the selected photos into capacity-bounded incident drafts plus orphans."""

    def __init__(self, config: Optional[GroupingConfig] = None, clusterer: Optional[Clusterer] = None):
        self.config = config or GroupingConfig()
        self.clusterer = clusterer or SpatialClusterer(radius_m=self.config.radius_m)
        self.splitter = ClusterSplitter(cap=self.config.max_photos_per_incident)

    def run(self, photos: List[Photo]) -> GroupingResult:
        with PerformanceMonitor("grouping") as monitor:
            with_gps = [p for p in photos if p.has_gps]
            orphans = [p for p in photos if not p.has_gps]

            incidents: List[Incident] = []
            if self.clusterer.condition(with_gps):
                for cluster in self.clusterer.build_clusters(with_gps):
                    incidents.extend(self.splitter.split(cluster.photos))

        logger.info(monitor.report(count=len(photos)))
        logger.info(f"Grouped {len(photos)} photos into {len(incidents)} incidents, {len(orphans)} orphans.")
        return GroupingResult(incidents=incidents, orphans=orphans)
