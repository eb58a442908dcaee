from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


@dataclass(frozen=True)
class Photo:
    """Metadata of one selected photo. Bytes live in the session blob store."""
    id: str
    original_name: str
    gps: Optional[GeoPoint] = None
    timestamp: Optional[float] = None  # Unix timestamp
    orientation: Optional[int] = None

    @property
    def has_gps(self) -> bool:
        return self.gps is not None

    @property
    def sort_timestamp(self) -> float:
        # Missing capture time sorts as the earliest
        return self.timestamp if self.timestamp is not None else 0.0


@dataclass
class PhotoBlob:
    payload: bytes
    content_type: str = "image/jpeg"
    preview_path: Optional[Path] = None  # temporary thumbnail file
