from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from intake.models.photo import GeoPoint, Photo
from intake.utils.geo import centroid


@dataclass
class Cluster:
    """Raw spatial group, before it is cut down to incident size."""
    seed: Photo
    photos: List[Photo]

    @property
    def centroid(self) -> Optional[GeoPoint]:
        return centroid(p.gps for p in self.photos)


class Clusterer(ABC):
    """Location-based grouping strategy."""

    @abstractmethod
    def build_clusters(self, photos: Sequence[Photo]) -> List[Cluster]:
        """
        Groups GPS-bearing photos.

        Args:
            photos: Photos in selection order. Photos without GPS are ignored.

        Returns:
            Clusters in the order their seeds were visited.
        """
        raise NotImplementedError()

    def cluster(self, photos: Sequence[Photo]) -> List[List[Photo]]:
        return [c.photos for c in self.build_clusters(photos)]

    @staticmethod
    def condition(photos: Iterable[Photo]) -> bool:
        """Grouping by location needs at least one GPS fix."""
        return any(p.has_gps for p in photos)
