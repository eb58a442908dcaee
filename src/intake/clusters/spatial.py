import logging
from typing import List, Sequence

from intake.clusters.base import Cluster, Clusterer
from intake.models.photo import Photo
from intake.utils.geo import haversine_distance_m

logger = logging.getLogger(__name__)

GROUPING_RADIUS_M = 50.0


class SpatialClusterer(Clusterer):
    """
    Seed (hub) clustering over GPS-bearing photos.

    Photos are visited in input order. Each unprocessed photo seeds a new
    cluster and pulls in every later unprocessed photo within ``radius_m`` of
    the seed. Membership is measured against the seed only, so the result
    depends on input order when photos chain across the radius.
    """

    def __init__(self, radius_m: float = GROUPING_RADIUS_M):
        self.radius_m = radius_m

    def build_clusters(self, photos: Sequence[Photo]) -> List[Cluster]:
        with_gps = [p for p in photos if p.gps is not None]
        skipped = len(photos) - len(with_gps)
        if skipped:
            logger.debug(f"Ignoring {skipped} photos without GPS.")

        processed = set()
        clusters: List[Cluster] = []

        for seed in with_gps:
            if seed.id in processed:
                continue

            members = [seed]
            processed.add(seed.id)

            for other in with_gps:
                if other.id in processed:
                    continue
                if haversine_distance_m(seed.gps, other.gps) <= self.radius_m:
                    members.append(other)
                    processed.add(other.id)

            clusters.append(Cluster(seed=seed, photos=members))

        logger.info(f"Spatial clustering: {len(with_gps)} photos -> {len(clusters)} clusters (radius={self.radius_m}m)")
        return clusters
